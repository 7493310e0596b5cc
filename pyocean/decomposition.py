"""
Block decomposition.

A decomposition method maps (mesh, n_blocks) to a cell -> block owner array.
Methods are looked up by name in DECOMPOSITIONS; "uniform" (contiguous,
equal-sized ranges of global cell index) is registered at import time.
"""

from __future__ import annotations

import logging
from typing import Callable

import numpy as np

from .errors import InvalidCombination
from .mesh import Mesh

logger = logging.getLogger(__name__)

DecompositionMethod = Callable[[Mesh, int], np.ndarray]

DECOMPOSITIONS: dict[str, DecompositionMethod] = {}


def register_decomposition(name: str, method: DecompositionMethod) -> None:
    if name in DECOMPOSITIONS:
        raise InvalidCombination(f"Decomposition method {name!r} is already registered.")
    DECOMPOSITIONS[name] = method


def uniform_decomposition(mesh: Mesh, n_blocks: int) -> np.ndarray:
    """Owner of each cell when cells are split into n_blocks contiguous ranges."""
    if n_blocks < 1 or n_blocks > mesh.n_cells:
        raise InvalidCombination(
            f"Cannot split {mesh.n_cells} cells into {n_blocks} blocks."
        )
    owner = np.empty(mesh.n_cells, dtype=np.int64)
    for b, chunk in enumerate(np.array_split(np.arange(mesh.n_cells), n_blocks)):
        owner[chunk] = b
    return owner


register_decomposition("uniform", uniform_decomposition)


def blocks_for_rank(n_blocks: int, rank: int, size: int) -> list[int]:
    """Block ids owned by ``rank`` (contiguous, as even as possible)."""
    return [int(b) for b in np.array_split(np.arange(n_blocks), size)[rank]]


def decompose(
    mesh: Mesh,
    *,
    rank: int = 0,
    size: int = 1,
    n_blocks: int = 0,
    method: str = "uniform",
    halo_layers: int = 3,
) -> list[tuple[int, Mesh]]:
    """
    (block_id, local mesh) pairs for this rank.

    n_blocks <= 0 means one block per rank. A single block overall keeps the
    full mesh without halos.
    """
    total = size if n_blocks <= 0 else int(n_blocks)
    if total < size:
        raise InvalidCombination(
            f"config_number_of_blocks={total} is smaller than the number of processes ({size})."
        )
    try:
        method_fn = DECOMPOSITIONS[method]
    except KeyError:
        raise InvalidCombination(
            f"Decomposition method {method!r} is not registered; known: {sorted(DECOMPOSITIONS)}."
        ) from None
    if total == 1:
        return [(0, mesh)]
    owner = method_fn(mesh, total)
    mine = blocks_for_rank(total, rank, size)
    blocks = [(b, mesh.subset(owner, b, halo_layers)) for b in mine]
    logger.info(
        "[Decomp] rank %d: blocks %s (%s owned cells)",
        rank,
        mine,
        [m.n_cells_owned for _, m in blocks],
    )
    return blocks
