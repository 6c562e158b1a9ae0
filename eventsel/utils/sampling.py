"""Deterministic sampling of event indices."""

from __future__ import annotations

from typing import List

import numpy as np


def evenly_spaced_indices(n_items: int, max_samples: int) -> List[int]:
    """
    Return at most `max_samples` indices evenly spread over range(n_items).

    The first and last items are always included. Indices depend only on
    `n_items` and `max_samples`, so repeated runs on the same data see the
    same sample. Halves round away from zero.
    """
    if n_items <= 0 or max_samples <= 0:
        return []
    size = min(int(max_samples), int(n_items))
    if size == 1:
        return [0]
    positions = np.linspace(0, n_items - 1, size)
    return np.floor(positions + 0.5).astype(int).tolist()
