"""
Client-side ordering and skip/top slicing for list tools.

Azure DevOps applies its own $skip/$top inconsistently (repositories, refs,
threads and comments come back as full collections), so list tools order the
full collection by a stable key and slice it here.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")

BRANCH_REFS_PREFIX = "refs/heads/"

DEFAULT_TOP = 100


def paginate(items: Sequence[T], skip: int = 0, top: int = DEFAULT_TOP) -> List[T]:
    """Return items[skip:skip + top]; out-of-range values give an empty list."""
    skip = max(skip, 0)
    top = max(top, 0)
    return list(items[skip:skip + top])


def name_key(name: Optional[str]) -> Tuple[str, str]:
    """
    Case-insensitive ordering key; among names differing only in case the
    lowercase form sorts first.
    """
    name = name or ""
    return name.casefold(), name.swapcase()


def sort_by_name(items: Iterable[Dict[str, Any]], descending: bool = False) -> List[Dict[str, Any]]:
    return sorted(items, key=lambda item: name_key(item.get("name")), reverse=descending)


def sort_by_id(items: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(items, key=lambda item: item.get("id") or 0)


def strip_branch_prefix(ref_name: str) -> str:
    return ref_name[len(BRANCH_REFS_PREFIX):] if ref_name.startswith(BRANCH_REFS_PREFIX) else ref_name


def branch_names(refs: Optional[Iterable[Dict[str, Any]]], top: int = DEFAULT_TOP) -> List[str]:
    """
    Reduce refs to branch names, newest-looking first.

    Tags and other namespaces are dropped, "refs/heads/" is stripped and the
    names are sorted in descending case-insensitive order before taking top.
    """
    names = [
        strip_branch_prefix(ref["name"])
        for ref in refs or []
        if ref.get("name") and ref["name"].startswith(BRANCH_REFS_PREFIX)
    ]
    names.sort(key=name_key, reverse=True)
    return paginate(names, 0, top)
