"""
Collect entity ids from an entity hierarchy.

The walk assumes a tree. A cyclic graph of entities never terminates.
"""

from typing import Set, Union

from careability.models import Entity


class Unbounded:
    """Sentinel depth meaning "the whole subtree"."""

    def __repr__(self):
        return "UNBOUNDED"


UNBOUNDED = Unbounded()

Depth = Union[int, Unbounded]


def _walk(entity: Entity, ids: Set[str], max_depth: Depth, level: int) -> None:
    ids.add(entity.id)
    if not entity.entities:
        return
    if max_depth is not UNBOUNDED and level >= max_depth:
        return
    for child in entity.entities:
        _walk(child, ids, max_depth, level + 1)


def collect_ids(root: Entity, max_depth: Depth = UNBOUNDED) -> Set[str]:
    """
    Return the ids of *root* and its descendants down to *max_depth* levels.

    ``max_depth=0`` is the root alone, ``1`` adds the direct children and
    ``UNBOUNDED`` covers the full subtree.
    """
    if max_depth is not UNBOUNDED and max_depth < 0:
        raise ValueError(f"max_depth must be >= 0, got {max_depth}")
    ids: Set[str] = set()
    _walk(root, ids, max_depth, 0)
    return ids
