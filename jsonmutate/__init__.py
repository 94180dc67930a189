# jsonmutate init

from .errors import (
    BodyError,
    CompileError,
    ExecutionError,
    MutateError,
)

from .condition import (
    JsonataEvaluator,
)

from .jsonmutate import (
    ACTION_TYPES,
    ActionSpec,
    CompiledAction,
    Target,
    UNSET,
    apply,
    clone,
    compile_action,
    compile_actions,
    deepequal,
    expand,
    getpath,
    islist,
    ismap,
    isnode,
    keysof,
    load_actions,
    resolve,
    typify,
)

from .mutator import (
    Mutator,
    decode,
    encode,
    placeholder,
    process_body,
)


__all__ = [
    'ACTION_TYPES',
    'ActionSpec',
    'BodyError',
    'CompileError',
    'CompiledAction',
    'ExecutionError',
    'JsonataEvaluator',
    'MutateError',
    'Mutator',
    'Target',
    'UNSET',
    'apply',
    'clone',
    'compile_action',
    'compile_actions',
    'deepequal',
    'decode',
    'encode',
    'expand',
    'getpath',
    'islist',
    'ismap',
    'isnode',
    'keysof',
    'load_actions',
    'placeholder',
    'process_body',
    'resolve',
    'typify',
]
