"""matrix.py

Cartesian expansion of tone x length x format settings for matrix experiments.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Sequence, Tuple

MATRIX_FIELDS = ("tones", "lengths", "formats")


def cartesian_product(arrays: Sequence[Sequence[Any]]) -> List[Tuple[Any, ...]]:
    """Ordered product of the inputs; the last input varies fastest.

    No inputs, or any empty input, yields [].
    """
    if not arrays:
        return []

    combos: List[Tuple[Any, ...]] = [()]
    for arr in arrays:
        if len(arr) == 0:
            return []
        combos = [prefix + (item,) for prefix in combos for item in arr]
    return combos


def build_matrix_combos(config: Mapping[str, Any]) -> List[Dict[str, Any]]:
    if not isinstance(config, Mapping):
        raise ValueError("Matrix config must be a mapping with tones, lengths and formats")

    fields = []
    for name in MATRIX_FIELDS:
        values = config.get(name) or []
        if not isinstance(values, (list, tuple)):
            raise ValueError(f"Matrix field '{name}' must be a list")
        fields.append(values)

    return [
        {"tone": tone, "length": length, "format": fmt}
        for tone, length, fmt in cartesian_product(fields)
    ]


def combo_count(config: Mapping[str, Any]) -> int:
    n = 1
    for name in MATRIX_FIELDS:
        n *= len(config.get(name) or [])
    return n
