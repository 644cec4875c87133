"""
Collection helpers used to diff relation snapshots.
"""

from typing import Any, Callable, Dict, Hashable, Iterable, Union

KeyGetter = Union[str, Callable[[Any], Hashable]]


def index_by(items: Iterable[Any], key: KeyGetter) -> Dict[Hashable, Any]:
    """
    Index ``items`` by an attribute name or a key function.

    Items whose key is ``None`` (unsaved records) are left out; when two items
    share a key the later one wins.
    """
    getter = key if callable(key) else (lambda item: getattr(item, key, None))
    indexed: Dict[Hashable, Any] = {}
    for item in items or ():
        value = getter(item)
        if value is None:
            continue
        indexed[value] = item
    return indexed


def diff_keys(left: Dict[Hashable, Any], right: Dict[Hashable, Any]) -> Dict[Hashable, Any]:
    """Return the entries of ``left`` whose keys are missing from ``right``."""
    return {k: v for k, v in left.items() if k not in right}
