# Copyright (c) 2025 Voxgig Ltd. MIT LICENSE.
#
# Mutator
# =======
#
# A configured list of actions, applied to raw JSON request bodies.
# The body is decoded, mutated, and re-encoded only if something
# changed. In strict mode, an empty or invalid body is an error;
# otherwise it passes through untouched.


from typing import Any, Callable, List, Tuple
import json
import logging

from .errors import BodyError, CompileError
from .jsonmutate import (
    CompiledAction,
    apply,
    compile_actions,
    getpath,
    ismap,
    islist,
    typify,
)


log = logging.getLogger(__name__)


S_strict = 'strict'
S_actions = 'actions'
S_json = 'json'
S_DT = '.'


def _nonfinite(name: str) -> Any:
    raise ValueError(f'{name} is not valid JSON')


def decode(body: Any) -> Any:
    "Decode strict JSON. NaN and Infinity are rejected."
    return json.loads(body, parse_constant=_nonfinite)


def encode(root: Any) -> bytes:
    "Encode compact UTF-8 JSON."
    return json.dumps(
        root, separators=(',', ':'), ensure_ascii=False, allow_nan=False).encode('utf-8')


def placeholder(root: Any, key: str) -> Tuple[Any, bool]:
    """
    Look up a `json.<path>` placeholder in a decoded body.
    Returns (value, found). Keys without the `json.` prefix, and paths
    with no value, are not found.
    """
    prefix = S_json + S_DT
    if not isinstance(key, str) or not key.startswith(prefix):
        return None, False

    missing = object()
    val = getpath(root, key[len(prefix):], missing)
    if val is missing:
        return None, False
    return val, True


class Mutator:

    def __init__(
        self,
        actions: Any = None,
        strict: bool = False,
        evaluator: Any = None,
    ) -> None:
        self.strict = strict
        self.actions: List[CompiledAction] = compile_actions(list(actions or []), evaluator)

    @classmethod
    def from_config(cls, config: Any, evaluator: Any = None) -> 'Mutator':
        """
        Create a mutator from a config map, or its JSON text:
        {"strict": false, "actions": [ ...action descriptors... ]}
        """
        if isinstance(config, (str, bytes)):
            try:
                config = json.loads(config)
            except ValueError as err:
                raise CompileError(f'invalid JSON config: {err}') from err

        if not ismap(config):
            raise CompileError(f'config must be an object, not {typify(config)}')

        unknown = sorted(k for k in config if k not in (S_strict, S_actions))
        if unknown:
            raise CompileError(f"unknown config field(s): {', '.join(unknown)}")

        strict = config.get(S_strict, False)
        if not isinstance(strict, bool):
            raise CompileError(f'strict must be true or false, not {typify(strict)}')

        actions = config.get(S_actions, [])
        if not islist(actions):
            raise CompileError(f'actions must be a list, not {typify(actions)}')

        return cls(actions, strict=strict, evaluator=evaluator)

    def apply(self, root: Any, context: Any = None) -> bool:
        return apply(root, self.actions, context)

    def replacer(self, root: Any) -> Callable[[str], Tuple[Any, bool]]:
        """
        Placeholder lookup over a decoded body: key -> (value, found).
        Lookups read root when called, so they see later mutations.
        """
        return lambda key: placeholder(root, key)

    def process(self, body: bytes, context: Any = None) -> bytes:
        """
        Apply the actions to a JSON body and return the new body.
        The original body is returned if nothing changed.
        Conditions see `context`, or the decoded body if there is none.
        """
        if not body:
            if self.strict:
                raise BodyError('empty body')
            log.debug('empty body, skipped')
            return body

        try:
            root = decode(body)
        except ValueError as err:
            if self.strict:
                raise BodyError(f'invalid JSON body: {err}') from err
            log.debug('invalid JSON body, skipped: %s', err)
            return body

        changed = self.apply(root, root if context is None else context)
        if not changed:
            return body

        return encode(root)


def process_body(
    body: bytes,
    actions: Any,
    context: Any = None,
    strict: bool = False,
) -> bytes:
    "Functional form of Mutator.process."
    return Mutator(actions, strict=strict).process(body, context)
