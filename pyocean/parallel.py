"""
Communication layer: reductions, halo exchange and collective abort.

Two communicators are provided:

- SerialCommunicator: a single process (which may still own several blocks);
  reductions are identities and abort exits the process.
- MpiCommunicator: mpi4py COMM_WORLD; abort calls MPI Abort so every rank
  terminates together.

Every collective must be reached by every rank in the same order.
"""

from __future__ import annotations

import logging
import sys
from typing import Protocol, Sequence

import numpy as np

from .errors import InvalidCombination, format_banner

logger = logging.getLogger(__name__)


class Communicator(Protocol):
    rank: int
    size: int

    def global_max(self, value: float) -> float: ...

    def global_min(self, value: float) -> float: ...

    def global_sum(self, value: float) -> float: ...

    def allreduce_sum(self, array: np.ndarray) -> np.ndarray: ...

    def barrier(self) -> None: ...

    def global_abort(self, message: str, exit_code: int = 1) -> None: ...


class SerialCommunicator:
    """Single-process communicator."""

    rank = 0
    size = 1

    def global_max(self, value: float) -> float:
        return float(value)

    def global_min(self, value: float) -> float:
        return float(value)

    def global_sum(self, value: float) -> float:
        return float(value)

    def allreduce_sum(self, array: np.ndarray) -> np.ndarray:
        return array

    def barrier(self) -> None:
        return None

    def global_abort(self, message: str, exit_code: int = 1) -> None:
        logger.critical(format_banner(message))
        sys.exit(exit_code)


class MpiCommunicator:
    """mpi4py-backed communicator over COMM_WORLD (or a given communicator)."""

    def __init__(self, comm=None) -> None:
        from mpi4py import MPI

        self._MPI = MPI
        self.comm = MPI.COMM_WORLD if comm is None else comm
        self.rank = self.comm.Get_rank()
        self.size = self.comm.Get_size()

    def global_max(self, value: float) -> float:
        return float(self.comm.allreduce(float(value), op=self._MPI.MAX))

    def global_min(self, value: float) -> float:
        return float(self.comm.allreduce(float(value), op=self._MPI.MIN))

    def global_sum(self, value: float) -> float:
        return float(self.comm.allreduce(float(value), op=self._MPI.SUM))

    def allreduce_sum(self, array: np.ndarray) -> np.ndarray:
        send = np.ascontiguousarray(array, dtype=np.float64)
        recv = np.empty_like(send)
        self.comm.Allreduce(send, recv, op=self._MPI.SUM)
        return recv

    def barrier(self) -> None:
        self.comm.Barrier()

    def global_abort(self, message: str, exit_code: int = 1) -> None:
        logger.critical(format_banner(message))
        sys.stderr.flush()
        self.comm.Abort(exit_code)


def make_communicator(kind: str = "serial", **kwargs) -> Communicator:
    """
    Communicator factory.

    kind:
      - "serial": SerialCommunicator
      - "mpi": MpiCommunicator (requires mpi4py)
    """
    k = (kind or "serial").strip().lower()
    if k == "serial":
        return SerialCommunicator()
    if k == "mpi":
        return MpiCommunicator(**kwargs)
    raise InvalidCombination(f"Unknown communicator kind: {kind!r}")


class HaloExchange:
    """
    Fills halo entries of per-block arrays from their owning blocks.

    Owners publish their owned values into a global-size buffer (zero
    elsewhere); a sum reduction combines the buffers of all ranks, and every
    block copies its halo entries out of the result. Each global entry has
    exactly one owner, so the sum reproduces the owner's value bit for bit.
    """

    def __init__(self, comm: Communicator, meshes: Sequence) -> None:
        self.comm = comm
        self.meshes = list(meshes)
        self.trivial = comm.size == 1 and len(self.meshes) == 1 and (
            self.meshes[0].n_cells_owned == self.meshes[0].n_cells
            and self.meshes[0].n_edges_owned == self.meshes[0].n_edges
        )

    def _exchange(self, arrays: Sequence[np.ndarray], location: str) -> None:
        if self.trivial:
            return
        if len(arrays) != len(self.meshes):
            raise ValueError("HaloExchange: one array per local block is required.")
        if location == "cell":
            ids = [m.cell_ids for m in self.meshes]
            owned = [m.n_cells_owned for m in self.meshes]
            n_global = self.meshes[0].n_global_cells
        elif location == "edge":
            ids = [m.edge_ids for m in self.meshes]
            owned = [m.n_edges_owned for m in self.meshes]
            n_global = self.meshes[0].n_global_edges
        else:
            raise ValueError(f"HaloExchange: unsupported location {location!r}")

        buf = np.zeros((n_global,) + arrays[0].shape[1:], dtype=np.float64)
        for arr, gid, n in zip(arrays, ids, owned):
            buf[gid[:n]] = arr[:n]
        buf = self.comm.allreduce_sum(buf)
        for arr, gid, n in zip(arrays, ids, owned):
            arr[n:] = buf[gid[n:]]

    def exchange_cells(self, arrays: Sequence[np.ndarray]) -> None:
        self._exchange(arrays, "cell")

    def exchange_edges(self, arrays: Sequence[np.ndarray]) -> None:
        self._exchange(arrays, "edge")


def gather_global(comm: Communicator, meshes: Sequence, arrays: Sequence[np.ndarray], location: str) -> np.ndarray:
    """Assemble the global field from the owned entries of every block (collective)."""
    if location == "cell":
        n_global = meshes[0].n_global_cells
        parts = [(m.cell_ids, m.n_cells_owned) for m in meshes]
    elif location == "edge":
        n_global = meshes[0].n_global_edges
        parts = [(m.edge_ids, m.n_edges_owned) for m in meshes]
    else:
        raise ValueError(f"gather_global: unsupported location {location!r}")
    first = np.asarray(arrays[0])
    if comm.size == 1 and len(meshes) == 1 and parts[0][1] == n_global:
        out = np.empty((n_global,) + first.shape[1:], dtype=first.dtype)
        out[parts[0][0][:n_global]] = first[:n_global]
        return out
    buf = np.zeros((n_global,) + first.shape[1:], dtype=np.float64)
    for arr, (gid, n) in zip(arrays, parts):
        buf[gid[:n]] = np.asarray(arr)[:n]
    return comm.allreduce_sum(buf)


__all__ = [
    "Communicator",
    "HaloExchange",
    "MpiCommunicator",
    "SerialCommunicator",
    "gather_global",
    "make_communicator",
]
