"""
Reference Buffer
================
Append-only, growable row store for the expanding Reference Set.

Capacity doubles when full, so n appends cost O(n) amortised copies
instead of the O(n^2) of concatenating the whole matrix every step.

Rows below ``size`` are never modified once written. A chart state
records how many rows it sees and reads them through ``view(n)``;
appending from a state that is no longer at the end of the buffer
(a stale state) forks the buffer first.
"""

from typing import Optional

import numpy as np


class ReferenceBuffer:
    """Append-only (n, p) float buffer with amortised doubling."""

    def __init__(self, n_features: int, capacity: int = 64):
        if n_features < 1:
            raise ValueError(f"n_features must be >= 1, got {n_features}")
        self._data = np.empty((max(capacity, 1), n_features))
        self._size = 0

    @classmethod
    def from_rows(cls, rows: np.ndarray) -> 'ReferenceBuffer':
        rows = np.asarray(rows, dtype=float)
        buf = cls(rows.shape[1], capacity=max(2 * rows.shape[0], 64))
        buf._data[:rows.shape[0]] = rows
        buf._size = rows.shape[0]
        return buf

    @property
    def size(self) -> int:
        return self._size

    @property
    def capacity(self) -> int:
        return self._data.shape[0]

    @property
    def n_features(self) -> int:
        return self._data.shape[1]

    def __len__(self) -> int:
        return self._size

    def view(self, n: Optional[int] = None) -> np.ndarray:
        """Read-only view of the first n rows (all rows by default)."""
        n = self._size if n is None else n
        if n > self._size:
            raise IndexError(f"Requested {n} rows, buffer holds {self._size}")
        out = self._data[:n]
        out = out.view()
        out.flags.writeable = False
        return out

    def append(self, row: np.ndarray) -> None:
        if self._size == self.capacity:
            grown = np.empty((2 * self.capacity, self.n_features))
            grown[:self._size] = self._data[:self._size]
            self._data = grown
        self._data[self._size] = row
        self._size += 1

    def fork(self, n: int) -> 'ReferenceBuffer':
        """New buffer holding a copy of the first n rows."""
        return ReferenceBuffer.from_rows(self._data[:n])
