"""
Named assay matrices sharing one features × samples shape.

An experiment often carries several matrices over the same grid: raw counts,
normalized values, log-scaled values, per-value quality scores. AssayStore
keeps them under named slots and guarantees they agree in shape.

Memory Model:
    Matrices are held by reference, never copied on the way in. Any holder of
    the same array sees in-place edits made through another holder:

    >>> counts = np.zeros((3, 2))
    >>> store = AssayStore({'counts': counts})
    >>> counts[0, 0] = 5
    >>> store.get('counts')[0, 0]
    5.0

    Callers that need isolation must ask for it with ``copy()``. There is no
    internal locking; two writers mutating the same matrix concurrently is
    the caller's responsibility.

Both dense ``numpy.ndarray`` and ``scipy.sparse`` matrices are accepted.
Subsetting always produces new matrices.
"""

from __future__ import annotations

from typing import Any, Iterator, Mapping, Optional

import numpy as np
from scipy import sparse

from expressionkit.core.exceptions import DimensionError
from expressionkit.core.metadata import resolve_selector

__all__ = ['AssayStore', 'as_matrix']


def as_matrix(value: Any) -> Any:
    """
    Coerce ``value`` to a 2-D numeric matrix without copying when possible.

    ndarrays and scipy sparse matrices pass through unchanged (same object),
    which is what preserves reference sharing. Other array-likes (lists,
    DataFrames) are converted.
    """
    if sparse.issparse(value):
        if value.ndim != 2:
            raise DimensionError(f"assay must be 2-D, got shape {value.shape}")
        return value
    if not isinstance(value, np.ndarray):
        value = np.asarray(value)
    if value.ndim != 2:
        raise DimensionError(f"assay must be 2-D, got shape {value.shape}")
    if not (np.issubdtype(value.dtype, np.number) or value.dtype == bool):
        raise TypeError(f"assay must be numeric, got dtype {value.dtype}")
    return value


def _take(matrix: Any, rows: Optional[np.ndarray], cols: Optional[np.ndarray]) -> Any:
    if sparse.issparse(matrix):
        # coo and friends don't support indexing
        m = matrix.tocsr()
        if rows is not None:
            m = m[rows, :]
        if cols is not None:
            m = m[:, cols]
        return m
    if rows is not None and cols is not None:
        return matrix[np.ix_(rows, cols)]
    if rows is not None:
        return matrix[rows, :]
    if cols is not None:
        return matrix[:, cols]
    return matrix


class AssayStore:
    """
    Mapping of slot name -> matrix, all with identical (F, S) shape.

    Attributes:
        names: Slot names in insertion order
        shape: Common (n_features, n_samples), or None when empty
    """

    def __init__(self, slots: Optional[Mapping[str, Any]] = None):
        """
        Raises:
            DimensionError: Matrices disagree in shape or are not 2-D
            TypeError: A matrix is not numeric
        """
        self._slots: dict[str, Any] = {}
        shape = None
        for name, matrix in (slots or {}).items():
            matrix = as_matrix(matrix)
            if shape is None:
                shape = matrix.shape
            elif matrix.shape != shape:
                raise DimensionError(
                    f"slot {name!r} has shape {matrix.shape}, expected {shape}"
                )
            self._slots[str(name)] = matrix
        self._shape = shape

    @property
    def names(self) -> list[str]:
        return list(self._slots)

    @property
    def shape(self) -> Optional[tuple[int, int]]:
        return self._shape

    @property
    def n_features(self) -> int:
        return self._shape[0] if self._shape else 0

    @property
    def n_samples(self) -> int:
        return self._shape[1] if self._shape else 0

    def get(self, name: str) -> Any:
        """Return the matrix stored under ``name`` (by reference)."""
        try:
            return self._slots[name]
        except KeyError:
            raise KeyError(f"no assay slot named {name!r}; have {self.names}") from None

    def set(self, name: str, matrix: Any) -> None:
        """
        Store ``matrix`` under ``name``, replacing any previous slot.

        Raises:
            DimensionError: Shape differs from the other slots
        """
        matrix = as_matrix(matrix)
        others = [n for n in self._slots if n != name]
        if others and matrix.shape != self._shape:
            raise DimensionError(
                f"slot {name!r} has shape {matrix.shape}, store is {self._shape}"
            )
        self._slots[name] = matrix
        self._shape = matrix.shape

    def remove(self, name: str) -> None:
        if name not in self._slots:
            raise KeyError(f"no assay slot named {name!r}")
        del self._slots[name]
        if not self._slots:
            self._shape = None

    def subset_rows(self, selector: Any) -> AssayStore:
        """Apply one row selection to every slot; returns a new store."""
        rows = resolve_selector(selector, self.n_features)
        return self._subset(rows, None)

    def subset_columns(self, selector: Any) -> AssayStore:
        """Apply one column selection to every slot; returns a new store."""
        cols = resolve_selector(selector, self.n_samples)
        return self._subset(None, cols)

    def subset(self, rows: Optional[np.ndarray], cols: Optional[np.ndarray]) -> AssayStore:
        """Subset both axes at once with pre-resolved integer positions."""
        return self._subset(rows, cols)

    def _subset(self, rows, cols) -> AssayStore:
        store = AssayStore()
        for name, matrix in self._slots.items():
            store._slots[name] = _take(matrix, rows, cols)
        if self._shape is not None:
            store._shape = (
                len(rows) if rows is not None else self._shape[0],
                len(cols) if cols is not None else self._shape[1],
            )
        return store

    def copy(self) -> AssayStore:
        """Deep copy: the new store shares no matrix with this one."""
        return AssayStore({name: m.copy() for name, m in self._slots.items()})

    def equals(self, other: AssayStore) -> bool:
        if not isinstance(other, AssayStore):
            return False
        if self.names != other.names or self._shape != other._shape:
            return False
        for name in self.names:
            a, b = self._slots[name], other._slots[name]
            if sparse.issparse(a) or sparse.issparse(b):
                a = a.toarray() if sparse.issparse(a) else a
                b = b.toarray() if sparse.issparse(b) else b
            equal_nan = a.dtype.kind == 'f' and b.dtype.kind == 'f'
            if not np.array_equal(a, b, equal_nan=equal_nan):
                return False
        return True

    def items(self):
        return self._slots.items()

    def __len__(self) -> int:
        return len(self._slots)

    def __contains__(self, name: object) -> bool:
        return name in self._slots

    def __iter__(self) -> Iterator[str]:
        return iter(self._slots)

    def __repr__(self) -> str:
        return f"AssayStore(shape={self._shape}, slots={self.names})"
