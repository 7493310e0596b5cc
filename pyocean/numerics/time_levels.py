"""
TimeLevelRing: fixed-size ring of prognostic state buffers.

Conventions:
- Time levels are 1-based, matching the model's language: level 1 is the
  state at the start of the step, level 2 the state being computed.
- shift() rotates the ring by one slot in O(1): the old level-2 buffer becomes
  level 1 (the very same array object, no copy), and the old level-1 buffer
  becomes level 2, which callers must treat as scratch.
- Integration never writes level 1; kernels read .cur and write .new.

Magic methods (non-hotspot convenience):
  - __getitem__(key) -> self.cur[key]
  - __array__(dtype) -> NumPy view/copy of .cur
"""

from __future__ import annotations

from typing import Any

import numpy as _np

N_TIME_LEVELS = 2


class TimeLevelRing:
    """
    Ring of ``n_levels`` equally shaped arrays with O(1) shift.

    Construction:
      ring = TimeLevelRing((n_cells, n_levels), dtype=float, initial_value=0.0)

    Use:
      h = ring.cur            # read start-of-step state
      ring.new[:] = h + dh    # write end-of-step state
      ring.shift()            # end-of-step state becomes start-of-step
    """

    __slots__ = ("_buffers", "_head", "__weakref__")

    def __init__(
        self,
        shape: tuple[int, ...],
        dtype: Any = _np.float64,
        initial_value: Any = 0.0,
        n_levels: int = N_TIME_LEVELS,
    ):
        if n_levels < 1:
            raise ValueError("TimeLevelRing needs at least one time level.")
        self._buffers = [_np.full(shape, initial_value, dtype=dtype) for _ in range(n_levels)]
        self._head = 0  # index of level 1 in _buffers

    @classmethod
    def from_array(cls, arr, n_levels: int = N_TIME_LEVELS) -> TimeLevelRing:
        """Ring whose every level starts as a copy of ``arr``."""
        a = _np.asarray(arr)
        ring = cls(a.shape, dtype=a.dtype, n_levels=n_levels)
        for buf in ring._buffers:
            buf[...] = a
        return ring

    # ---- core ----
    @property
    def n_levels(self) -> int:
        return len(self._buffers)

    def level(self, time_level: int) -> _np.ndarray:
        """Array holding 1-based ``time_level``."""
        if not 1 <= time_level <= len(self._buffers):
            raise IndexError(
                f"time level {time_level} outside 1..{len(self._buffers)}"
            )
        return self._buffers[(self._head + time_level - 1) % len(self._buffers)]

    @property
    def cur(self) -> _np.ndarray:
        """Level 1: state at the start of the step."""
        return self._buffers[self._head]

    @property
    def new(self) -> _np.ndarray:
        """Level 2: state being computed."""
        return self.level(2)

    def shift(self) -> None:
        """Rotate: level k+1 becomes level k; old level 1 becomes the last level."""
        self._head = (self._head + 1) % len(self._buffers)

    def copy_level(self, src: int, dst: int) -> None:
        self.level(dst)[...] = self.level(src)

    # ---- convenience ----
    @property
    def shape(self) -> tuple[int, ...]:
        return self.cur.shape

    @property
    def dtype(self) -> _np.dtype:
        return self.cur.dtype

    def __getitem__(self, key):
        return self.cur[key]

    def __array__(self, dtype=None, copy=None):
        arr = self.cur
        if dtype is not None and arr.dtype != dtype:
            return arr.astype(dtype)
        return arr

    def __repr__(self) -> str:
        return (
            f"TimeLevelRing(shape={self.shape}, dtype={self.dtype}, "
            f"levels={self.n_levels}, head=buf{self._head})"
        )
