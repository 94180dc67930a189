# Copyright (c) 2025 Voxgig Ltd. MIT LICENSE.
#
# Conditions
# ==========
#
# An action may carry a `when` expression. Expressions are JSONata,
# compiled once with the action and evaluated against the context
# given to each call of `apply`.

from typing import Any

import jsonata

from .errors import CompileError


class JsonataEvaluator:
    """
    Compile and evaluate JSONata `when` expressions.
    Any object with the same two methods can be used instead.
    """

    def compile(self, source: str) -> Any:
        try:
            return jsonata.Jsonata(source)
        except Exception as err:
            raise CompileError(f"invalid condition '{source}': {err}") from err

    def evaluate(self, predicate: Any, context: Any) -> Any:
        return predicate.evaluate(context)
