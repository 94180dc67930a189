# Test runner that uses the test model in mutate.json.

import os
import json
import re
import traceback
from typing import Any, Dict, Callable, TypedDict

from jsonmutate import clone, ismap, islist


NULLMARK = '__NULL__'  # Value is JSON null


class RunPack(TypedDict):
    spec: Dict[str, Any]
    runset: Callable
    runsetflags: Callable


def makeRunner(testfile: str):

    def runner(name: str) -> RunPack:
        spec = resolve_spec(name, testfile)

        def runsetflags(testspec, flags, subject):
            flags = resolve_flags(flags)
            testset = testspec['set']

            for entry in testset:
                entry = resolve_entry(entry, flags)
                try:
                    args = resolve_args(entry)
                    res = subject(*args)
                except Exception as err:
                    handle_error(entry, err)
                    continue

                res = fixJSON(res, flags)
                entry['res'] = res
                check_result(entry, res, flags)

        def runset(testspec, subject):
            return runsetflags(testspec, {}, subject)

        return {
            "spec": spec,
            "runset": runset,
            "runsetflags": runsetflags,
        }

    return runner


def resolve_spec(name: str, testfile: str) -> Dict[str, Any]:
    with open(os.path.join(os.path.dirname(__file__), testfile), 'r', encoding='utf-8') as f:
        alltests = json.load(f)

    if name in alltests:
        return alltests[name]

    return alltests


def check_result(entry, res, flags):
    if 'err' in entry:
        raise AssertionError(
            f"Expected error: {entry['err']}, got: {res}\n"
            f"Entry: {json.dumps(entry, indent=2, default=jsonfallback)}"
        )

    out = fixJSON(entry.get('out'), flags)

    if out != res:
        raise AssertionError(
            f"Expected: {out}, got: {res}\n"
            f"Entry: {json.dumps(entry, indent=2, default=jsonfallback)}"
        )


def handle_error(entry, err):
    entry_err = entry.get('err')

    # The test expects an error.
    if entry_err is not None:
        if entry_err is True or matchval(entry_err, str(err)):
            return True

        raise AssertionError(
            f"ERROR MATCH: [{entry_err}] <=> [{err}]"
        )

    raise AssertionError(
        f"{traceback.format_exc()}\nENTRY: "
        f"{json.dumps(entry, indent=2, default=jsonfallback)}"
    )


def resolve_args(entry):
    if 'args' in entry:
        return clone(entry['args'])
    elif 'in' in entry:
        return [clone(entry['in'])]
    return []


def resolve_flags(flags: Dict[str, Any] = None) -> Dict[str, bool]:
    if flags is None:
        flags = {}

    flags["null"] = flags.get("null", True)

    return flags


def resolve_entry(entry: Dict[str, Any], flags: Dict[str, bool]) -> Dict[str, Any]:
    # Set default output value for missing 'out' field
    if 'out' not in entry and 'err' not in entry and flags.get("null", True):
        entry["out"] = NULLMARK

    return entry


def fixJSON(obj, flags):
    # Handle nulls
    if obj is None:
        return NULLMARK if flags.get("null", True) else None

    # Handle collections recursively
    elif islist(obj):
        return [fixJSON(item, flags) for item in obj]
    elif ismap(obj):
        return {k: fixJSON(v, flags) for k, v in obj.items()}

    return obj


def jsonfallback(obj):
    return f"<non-serializable: {type(obj).__name__}>"


def matchval(check, base):
    if check == base:
        return True

    if isinstance(check, str):
        base_str = str(base)

        # Check for regex pattern with /pattern/ syntax
        regex_match = re.match(r'^/(.+)/$', check)

        if regex_match:
            return re.search(regex_match.group(1), base_str) is not None
        else:
            # Case-insensitive substring check
            return check.lower() in base_str.lower()

    return False


__all__ = [
    'NULLMARK',
    'makeRunner',
]
