"""Cartesian product over a mapping of value lists."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from itertools import product
from typing import Any


def cartesian_product(map_of_lists: Mapping[str, Sequence[Any]]) -> list[dict[str, Any]]:
    """Return one dict per combination of the values in ``map_of_lists``.

    An empty mapping, or any empty list, yields no combinations at all.
    """
    names = list(map_of_lists)
    lists = [list(map_of_lists[name]) for name in names]
    if not lists or any(not values for values in lists):
        return []
    return [dict(zip(names, combo)) for combo in product(*lists)]