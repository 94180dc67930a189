# Copyright (c) 2025 Voxgig Ltd. MIT LICENSE.


class MutateError(ValueError):
    "Base class of all jsonmutate errors."


class CompileError(MutateError):
    "An action description, regex, literal or condition is invalid."


class ExecutionError(MutateError):
    """
    A condition failed while actions were being applied.
    Mutations made by earlier actions are kept; `changed` reports them.
    """
    def __init__(self, message: str, changed: bool = False) -> None:
        super().__init__(message)
        self.changed = changed


class BodyError(MutateError):
    "A request body was rejected in strict mode."
