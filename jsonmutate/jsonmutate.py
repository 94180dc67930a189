# Copyright (c) 2025 Voxgig Ltd. MIT LICENSE.
#
# JSON Mutate
# ===========
#
# Apply declarative, path-addressed actions to a decoded JSON document,
# mutating it in place.
#
# Paths are dot separated. Against a list, an integer token is an
# index. The token `*` fans out over every element (list) or key (map)
# of the current node. Any other token, including a numeric one against
# a map, is a literal map key.
#
# Main utilities
# - resolve: find the mutable targets addressed by a path.
# - compile_action: validate an action description, once, before use.
# - apply: run compiled actions against a document, in order.
#
# Actions
# - set: replace the value at each target.
# - merge: merge an object into each map target.
# - delete: remove each target.
# - transform_array: expand matching strings of a list via templates.
# - merge_if_match: merge into one path if another path has a match.
#
# Minor utilities
# - isnode, ismap, islist: identify value kinds.
# - typify: name the JSON kind of a value.
# - keysof: sorted list of map keys, or list indexes.
# - clone: deep copy of a JSON value.
# - deepequal: JSON equality (booleans are not numbers).
# - expand: expand a replacement template against a regex match.
# - getpath: get the first value addressed by a path.


from typing import Any, Dict, List, Optional, Tuple
from dataclasses import dataclass, fields
import json
import logging
import re

from .condition import JsonataEvaluator
from .errors import CompileError, ExecutionError


log = logging.getLogger(__name__)


# Action types.
S_set = 'set'
S_merge = 'merge'
S_delete = 'delete'
S_transform_array = 'transform_array'
S_merge_if_match = 'merge_if_match'

ACTION_TYPES = (
    S_set,
    S_merge,
    S_delete,
    S_transform_array,
    S_merge_if_match,
)

# JSON kinds.
S_null = 'null'
S_boolean = 'boolean'
S_number = 'number'
S_string = 'string'
S_array = 'array'
S_object = 'object'
S_any = 'any'

# General strings.
S_MT = ''
S_DT = '.'
S_DS = '$'
S_WILD = '*'


R_INDEX = re.compile(r'^[+-]?[0-9]+$')                         # List index token.
R_TEMPLATE_REF = re.compile(r'\$(?:\$|\{(\w+)\}|(\w+))', re.A)  # Template reference.


# Marks a value that was not given (distinct from JSON null).
UNSET = type('Unset', (), {'__repr__': lambda self: 'UNSET'})()


def isnode(val: Any = None) -> bool:
    "Value is a node - a map (object) or list (array)."
    return isinstance(val, (dict, list))


def ismap(val: Any = None) -> bool:
    "Value is a map (object) with string keys."
    return isinstance(val, dict)


def islist(val: Any = None) -> bool:
    "Value is a list (array)."
    return isinstance(val, list)


def typify(val: Any = None) -> str:
    # bool before number: bool is a subclass of int.
    if val is None:
        return S_null
    if isinstance(val, bool):
        return S_boolean
    if isinstance(val, (int, float)):
        return S_number
    if isinstance(val, str):
        return S_string
    if isinstance(val, list):
        return S_array
    if isinstance(val, dict):
        return S_object
    return S_any


def keysof(val: Any = None) -> list:
    "Sorted keys of a map, or indexes of a list."
    if ismap(val):
        return sorted(val.keys())
    elif islist(val):
        return list(range(len(val)))
    return []


def clone(val: Any = None) -> Any:
    "Deep copy of a JSON value. No node is shared with the original."
    if ismap(val):
        return {k: clone(v) for k, v in val.items()}
    elif islist(val):
        return [clone(v) for v in val]
    return val


def deepequal(a: Any, b: Any) -> bool:
    """
    JSON equality. Maps are equal if they have the same keys and equal
    values (key order is ignored), lists if they have the same length
    and equal elements. Numbers compare by value (1 == 1.0), but a
    boolean never equals a number.
    """
    kind = typify(a)
    if kind != typify(b):
        return False

    if S_object == kind:
        return a.keys() == b.keys() and all(deepequal(v, b[k]) for k, v in a.items())
    elif S_array == kind:
        return len(a) == len(b) and all(deepequal(x, y) for x, y in zip(a, b))

    return a == b


def expand(template: str, match: Any) -> str:
    """
    Expand a replacement template against a regex match.
    $n and ${n} insert numbered groups ($0 is the whole match), $name and
    ${name} insert named groups, and $$ inserts a literal $. A name is as
    long as possible, so $1x refers to the group named "1x".
    Unknown and unmatched groups insert nothing.
    """
    def sub(m):
        name = m.group(1) or m.group(2)
        if name is None:
            return S_DS

        if name.isdigit():
            num = int(name)
            if num > match.re.groups:
                return S_MT
            return match.group(num) or S_MT

        if name in match.re.groupindex:
            return match.group(name) or S_MT

        return S_MT

    return R_TEMPLATE_REF.sub(sub, template)


class Target:
    """
    A mutable location in a JSON tree: a parent node, and a key (maps)
    or a non-negative index (lists). The location need not hold a value.
    """
    __slots__ = ('parent', 'key')

    def __init__(self, parent: Any, key: Any) -> None:
        self.parent = parent
        self.key = key

    def exists(self) -> bool:
        if ismap(self.parent):
            return self.key in self.parent
        return self.key < len(self.parent)

    def get(self, alt: Any = None) -> Any:
        "Current value, or alt if there is none."
        if self.exists():
            return self.parent[self.key]
        return alt

    def set(self, val: Any) -> None:
        """
        Set the value. Lists grow as needed, with None (JSON null)
        filling any new slots before the index.
        """
        if islist(self.parent):
            grow = 1 + self.key - len(self.parent)
            if 0 < grow:
                self.parent.extend([None] * grow)
        self.parent[self.key] = val

    def delete(self) -> bool:
        "Remove the value. List elements after it shift down."
        if not self.exists():
            return False
        del self.parent[self.key]
        return True

    def __repr__(self) -> str:
        return f'Target({typify(self.parent)}, {self.key!r})'


def parsepath(path: Any) -> List[str]:
    "Split a path into its parts."
    if islist(path):
        return [str(part) for part in path]
    return str(path).split(S_DT)


def resolve(root: Any, path: Any) -> List[Target]:
    """
    Resolve a path into the targets it addresses in root.
    A path that cannot be followed resolves to no targets.
    A missing key (or out of range index) is only allowed in the final part.
    """
    targets = []
    parts = parsepath(path)
    if 0 < len(parts):
        _descend(root, parts, 0, targets)
    return targets


def _descend(node: Any, parts: List[str], pI: int, targets: List[Target]) -> None:
    part = parts[pI]
    last = pI == len(parts) - 1

    if S_WILD == part:
        if not isnode(node):
            return
        for key in keysof(node):
            if last:
                targets.append(Target(node, key))
            else:
                _descend(node[key], parts, pI + 1, targets)

    elif islist(node):
        if not R_INDEX.match(part):
            return
        index = int(part)
        if index < 0:
            return
        if last:
            targets.append(Target(node, index))
        elif index < len(node):
            _descend(node[index], parts, pI + 1, targets)

    elif ismap(node):
        if last:
            targets.append(Target(node, part))
        elif part in node:
            _descend(node[part], parts, pI + 1, targets)


def getpath(root: Any, path: Any, alt: Any = None) -> Any:
    "Get the value of the first target of path that has one."
    for target in resolve(root, path):
        if target.exists():
            return target.get()
    return alt


def apply_set(root: Any, path: str, value: Any) -> bool:
    targets = resolve(root, path)
    for target in targets:
        target.set(clone(value))
    return 0 < len(targets)


def apply_merge(root: Any, path: str, value: Dict[str, Any]) -> bool:
    """
    Merge the keys of value into each map target. An absent or null
    target becomes an empty map first. Other non-map targets are left alone.
    """
    changed = False

    for target in resolve(root, path):
        dst = target.get()
        if dst is None:
            dst = {}
            target.set(dst)
            changed = True

        if not ismap(dst):
            continue

        for key, val in value.items():
            if key not in dst or not deepequal(dst[key], val):
                dst[key] = clone(val)
                changed = True

    return changed


def apply_delete(root: Any, path: str) -> bool:
    changed = False

    # Last first: removing a list element only shifts later elements.
    for target in reversed(resolve(root, path)):
        changed = target.delete() or changed

    return changed


def apply_transform_array(
        root: Any,
        path: str,
        regex: re.Pattern,
        replacements: Tuple[str, ...]
) -> bool:
    """
    Replace each string in each list target that the regex matches
    with the expansion of every template. Other elements are kept as is.
    """
    changed = False

    for target in resolve(root, path):
        val = target.get()
        if not islist(val):
            continue

        out = []
        matched = False
        for item in val:
            m = regex.search(item) if isinstance(item, str) else None
            if m is None:
                out.append(item)
            else:
                out.extend(expand(template, m) for template in replacements)
                matched = True

        if matched:
            target.set(out)
            changed = True

    return changed


def anymatch(root: Any, path: str, regex: re.Pattern) -> bool:
    "Some string element of some list target of path matches the regex."
    for target in resolve(root, path):
        val = target.get()
        if islist(val):
            for item in val:
                if isinstance(item, str) and regex.search(item):
                    return True
    return False


def apply_merge_if_match(
        root: Any,
        path: str,
        regex: re.Pattern,
        target: str,
        value: Dict[str, Any]
) -> bool:
    if not anymatch(root, path, regex):
        return False
    return apply_merge(root, target, value)


@dataclass(frozen=True)
class ActionSpec:
    """
    An action as authored. See compile_action for the fields each
    action type needs.
    """
    type: str
    path: str
    value: Any = UNSET
    regex: Optional[str] = None
    replacements: Tuple[str, ...] = ()
    target: Optional[str] = None
    when: Optional[str] = None

    @classmethod
    def from_dict(cls, desc: Any) -> 'ActionSpec':
        if not ismap(desc):
            raise CompileError(f'action must be an object, not {typify(desc)}')

        names = [f.name for f in fields(cls)]
        unknown = sorted(k for k in desc if k not in names)
        if unknown:
            raise CompileError(f"unknown action field(s): {', '.join(unknown)}")

        if 'type' not in desc:
            raise CompileError('action type required')

        args = dict(desc)
        args.setdefault('path', None)
        if islist(args.get('replacements')):
            args['replacements'] = tuple(args['replacements'])

        return cls(**args)


@dataclass(frozen=True)
class CompiledAction:
    "An action ready to run. Never modified after compile_action."
    type: str
    path: str
    value: Any = None
    regex: Optional[re.Pattern] = None
    replacements: Tuple[str, ...] = ()
    target: Optional[str] = None
    when: Optional[str] = None
    predicate: Any = None
    evaluator: Any = None

    def run(self, root: Any) -> bool:
        "Perform the action (ignoring any condition). True if root changed."
        if S_set == self.type:
            return apply_set(root, self.path, self.value)
        elif S_merge == self.type:
            return apply_merge(root, self.path, self.value)
        elif S_delete == self.type:
            return apply_delete(root, self.path)
        elif S_transform_array == self.type:
            return apply_transform_array(root, self.path, self.regex, self.replacements)
        elif S_merge_if_match == self.type:
            return apply_merge_if_match(
                root, self.path, self.regex, self.target, self.value)

        raise ExecutionError(f'unsupported action type: {self.type}')


def _badkeys(val: Any):
    "Map keys anywhere in val that are not strings."
    if ismap(val):
        for key, child in val.items():
            if not isinstance(key, str):
                yield key
            yield from _badkeys(child)
    elif islist(val):
        for child in val:
            yield from _badkeys(child)


def _literal(spec: ActionSpec) -> Any:
    if spec.value is UNSET:
        raise CompileError(f'{spec.type} {spec.path}: value required')

    badkey = next(_badkeys(spec.value), UNSET)
    if badkey is not UNSET:
        raise CompileError(
            f'{spec.type} {spec.path}: invalid JSON value: key {badkey!r} is not a string')

    # A JSON round trip both validates the value and detaches it from the spec.
    try:
        return json.loads(json.dumps(spec.value, allow_nan=False))
    except (TypeError, ValueError) as err:
        raise CompileError(f'{spec.type} {spec.path}: invalid JSON value: {err}') from err


def _regex(spec: ActionSpec) -> re.Pattern:
    if not isinstance(spec.regex, str) or S_MT == spec.regex:
        raise CompileError(f'{spec.type} {spec.path}: regex required')

    try:
        return re.compile(spec.regex)
    except re.error as err:
        raise CompileError(f'{spec.type} {spec.path}: invalid regex: {err}') from err


def compile_action(spec: Any, evaluator: Any = None) -> CompiledAction:
    """
    Validate an action (an ActionSpec, or a descriptor map) and prepare
    its value, regex and condition. The spec itself is not changed.
    An already compiled action is returned as is.

    Required fields, by type:
    - set: path, value (any JSON).
    - merge: path, value (an object).
    - delete: path.
    - transform_array: path, regex, replacements (one or more templates).
    - merge_if_match: path (source), regex, target, value (an object).
    Any type may also have `when`, a condition expression.
    """
    if isinstance(spec, CompiledAction):
        return spec
    if not isinstance(spec, ActionSpec):
        spec = ActionSpec.from_dict(spec)

    kind = spec.type
    if kind not in ACTION_TYPES:
        raise CompileError(f'unsupported action type: {kind}')

    if not isinstance(spec.path, str):
        raise CompileError(f'{kind}: path required')

    value = None
    if kind in (S_set, S_merge, S_merge_if_match):
        value = _literal(spec)
        if S_set != kind and not ismap(value):
            raise CompileError(f'{kind} {spec.path}: value must be an object')

    regex = None
    if kind in (S_transform_array, S_merge_if_match):
        regex = _regex(spec)

    replacements = ()
    if S_transform_array == kind:
        if not isinstance(spec.replacements, (list, tuple)):
            raise CompileError(f'{kind} {spec.path}: replacements must be a list of strings')
        replacements = tuple(spec.replacements)
        if 0 == len(replacements):
            raise CompileError(f'{kind} {spec.path}: at least one replacement required')
        if not all(isinstance(r, str) for r in replacements):
            raise CompileError(f'{kind} {spec.path}: replacements must be strings')

    if S_merge_if_match == kind:
        if not isinstance(spec.target, str) or S_MT == spec.target:
            raise CompileError(f'{kind} {spec.path}: target path required')

    if spec.when is not None and not isinstance(spec.when, str):
        raise CompileError(f'{kind} {spec.path}: when must be a string')

    when = (spec.when or S_MT).strip()
    predicate = None
    if S_MT != when:
        evaluator = evaluator or JsonataEvaluator()
        try:
            predicate = evaluator.compile(when)
        except CompileError:
            raise
        except Exception as err:
            raise CompileError(f'when {spec.path}: {err}') from err

    return CompiledAction(
        type=kind,
        path=spec.path,
        value=value,
        regex=regex,
        replacements=replacements,
        target=spec.target if S_merge_if_match == kind else None,
        when=when or None,
        predicate=predicate,
        evaluator=evaluator if predicate is not None else None,
    )


def compile_actions(specs: Any, evaluator: Any = None) -> List[CompiledAction]:
    "Compile a list of actions. The first invalid action raises CompileError."
    if not islist(specs) and not isinstance(specs, tuple):
        raise CompileError(f'actions must be a list, not {typify(specs)}')
    return [compile_action(spec, evaluator) for spec in specs]


def load_actions(text: Any) -> List[ActionSpec]:
    "Parse JSON text holding a list of action descriptors."
    try:
        descs = json.loads(text)
    except ValueError as err:
        raise CompileError(f'invalid JSON actions: {err}') from err

    if not islist(descs):
        raise CompileError(f'actions must be a list, not {typify(descs)}')

    return [ActionSpec.from_dict(desc) for desc in descs]


def apply(root: Any, actions: List[CompiledAction], context: Any = None) -> bool:
    """
    Apply compiled actions to root, in order, mutating it in place.
    An action whose condition is false is skipped. Returns True if
    root changed.

    If a condition fails, ExecutionError is raised at once, with
    `changed` reporting the mutations already made (they are not undone).
    """
    changed = False

    for act in actions:
        if act.predicate is not None:
            try:
                ok = act.evaluator.evaluate(act.predicate, context)
            except Exception as err:
                raise ExecutionError(
                    f"when {act.path}: condition '{act.when}' failed: {err}",
                    changed) from err

            if not isinstance(ok, bool):
                raise ExecutionError(
                    f"when {act.path}: condition '{act.when}' must be true or false, "
                    f"not {typify(ok)}", changed)

            if not ok:
                log.debug('skip %s %s: condition is false', act.type, act.path)
                continue

        achanged = act.run(root)
        log.debug('%s %s: changed=%s', act.type, act.path, achanged)
        changed = achanged or changed

    return changed


__all__ = [
    'ACTION_TYPES',
    'ActionSpec',
    'CompiledAction',
    'Target',
    'UNSET',
    'anymatch',
    'apply',
    'apply_delete',
    'apply_merge',
    'apply_merge_if_match',
    'apply_set',
    'apply_transform_array',
    'clone',
    'compile_action',
    'compile_actions',
    'deepequal',
    'expand',
    'getpath',
    'islist',
    'ismap',
    'isnode',
    'keysof',
    'load_actions',
    'parsepath',
    'resolve',
    'typify',
]
