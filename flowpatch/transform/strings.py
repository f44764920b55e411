# flowpatch/transform/strings.py

from typing import Any, Callable, Iterator


def map_strings(value: Any, fn: Callable[[str], str]) -> Any:
    """
    Return a deep copy of a JSON-like value with every string leaf replaced by fn(leaf).
    Dict keys are kept verbatim; lists/tuples and dicts are rebuilt at every level,
    every other scalar passes through untouched. The input is never mutated.
    """
    if isinstance(value, str):
        return fn(value)
    if isinstance(value, (list, tuple)):
        return [map_strings(item, fn) for item in value]
    if isinstance(value, dict):
        return {key: map_strings(item, fn) for key, item in value.items()}
    return value


def iter_strings(value: Any) -> Iterator[str]:
    """Yield every string leaf of a JSON-like value (dict keys excluded), depth-first."""
    if isinstance(value, str):
        yield value
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from iter_strings(item)
    elif isinstance(value, dict):
        for item in value.values():
            yield from iter_strings(item)
