"""
Ordered, typed metadata tables for samples and features.

MetadataTable holds per-sample annotations (treatment group, collection date,
batch) or per-feature annotations (gene symbol, chromosome, biotype). Each
column has a fixed dtype chosen at creation; rows are identified by position,
and optionally by a designated identifier column.

Biological Context:
    Sample sheets and gene annotation tables are the two metadata sources
    every expression experiment carries:
    - Sample metadata: one row per column of the assay matrix
    - Feature metadata: one row per row of the assay matrix

    Keeping these aligned with the assay is the job of CoupledContainer;
    this module only guarantees the table itself is rectangular and typed.

Engineering Design:
    - Backed by a pandas DataFrame with a RangeIndex (position = identity)
    - Subsetting returns new tables (the receiver is never modified)
    - No hidden coercion: replacing a column must keep its dtype

Examples:
    >>> from expressionkit.core.metadata import MetadataTable
    >>> samples = MetadataTable(
    ...     {'sample_id': ['s1', 's2', 's3'], 'group': ['ctrl', 'trt', 'trt']},
    ...     id_column='sample_id',
    ... )
    >>> treated = samples.subset_rows(samples['group'] == 'trt')
    >>> list(treated.ids)
    ['s2', 's3']
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from expressionkit.core.exceptions import DimensionError

__all__ = ['MetadataTable', 'resolve_selector']


def _as_series(values: Any) -> pd.Series:
    # Series keep their dtype (categoricals included) but drop their index
    if isinstance(values, pd.Series):
        return values.reset_index(drop=True)
    return pd.Series(values)


def resolve_selector(selector: Any, n: int, labels: Optional[pd.Index] = None) -> np.ndarray:
    """
    Normalize a row/column selector into an array of integer positions.

    Accepts a boolean mask, integer positions, a slice, or (when ``labels``
    is given) a list of identifiers. Integer arrays are always positions,
    even when the identifiers themselves are integers (Entrez ids, say);
    select those by mask, e.g. ``np.isin(ids, wanted)``.

    Raises:
        DimensionError: Boolean mask length differs from ``n``
        IndexError: Integer position out of range
        KeyError: Identifier not present in ``labels``, or ``labels`` not unique
    """
    if isinstance(selector, slice):
        return np.arange(n)[selector]

    if isinstance(selector, pd.Series):
        selector = selector.to_numpy()

    arr = np.asarray(selector)
    if arr.ndim == 0:
        arr = arr.reshape(1)
    if arr.ndim != 1:
        raise DimensionError(f"selector must be 1-D, got shape {arr.shape}")

    if arr.dtype == bool:
        if len(arr) != n:
            raise DimensionError(
                f"boolean mask length ({len(arr)}) must match axis length ({n})"
            )
        return np.flatnonzero(arr)

    if len(arr) == 0:
        return np.arange(0)

    if np.issubdtype(arr.dtype, np.integer):
        out_of_range = (arr >= n) | (arr < -n)
        if out_of_range.any():
            raise IndexError(
                f"positions {arr[out_of_range].tolist()} out of range for axis of length {n}"
            )
        return np.where(arr < 0, arr + n, arr).astype(np.intp)

    if labels is None:
        raise TypeError(
            f"selector of dtype {arr.dtype} needs identifiers to resolve against"
        )
    if not labels.is_unique:
        raise KeyError("identifiers are not unique; select by position or mask instead")
    positions = labels.get_indexer(arr)
    missing = arr[positions < 0]
    if len(missing):
        raise KeyError(f"unknown identifiers: {missing.tolist()}")
    return positions.astype(np.intp)


class MetadataTable:
    """
    Rectangular table of named, typed columns.

    Attributes:
        columns: Column names in order
        dtypes: Declared dtype per column
        id_column: Name of the identifier column (or None)
        n_rows: Number of rows

    Invariant:
        Every column has exactly ``n_rows`` values.
    """

    def __init__(
        self,
        columns: Optional[Mapping[str, Iterable[Any]]] = None,
        id_column: Optional[str] = None,
        n_rows: Optional[int] = None,
    ):
        """
        Build a table from a mapping of column name to values.

        Args:
            columns: Column name -> values (list, array, Series)
            id_column: Column holding row identifiers, if any
            n_rows: Row count for a table with no columns

        Raises:
            DimensionError: Columns have unequal length, or disagree with n_rows
            KeyError: id_column is not one of the columns
        """
        columns = dict(columns or {})
        series = {}
        lengths = {}
        for name, values in columns.items():
            s = _as_series(values)
            series[name] = s
            lengths[name] = len(s)

        if len(set(lengths.values())) > 1:
            raise DimensionError(f"columns have unequal lengths: {lengths}")

        inferred = next(iter(lengths.values())) if lengths else (n_rows or 0)
        if n_rows is not None and inferred != n_rows:
            raise DimensionError(
                f"columns have {inferred} rows but n_rows={n_rows} was requested"
            )

        if id_column is not None and id_column not in series:
            raise KeyError(f"id_column {id_column!r} is not a column")

        index = pd.RangeIndex(inferred)
        frame = pd.DataFrame(
            {name: s.set_axis(index) for name, s in series.items()},
            index=index,
        )
        self._frame = frame
        self._id_column = id_column

    @classmethod
    def from_frame(cls, frame: pd.DataFrame, id_column: Optional[str] = None) -> MetadataTable:
        """
        Wrap a pandas DataFrame.

        If ``id_column`` is None and the frame has a non-default index, the
        index becomes an identifier column named after the index (or "id").
        """
        if id_column is None and not isinstance(frame.index, pd.RangeIndex):
            id_name = frame.index.name or 'id'
            if id_name in frame.columns:
                raise ValueError(f"index name {id_name!r} collides with a column")
            columns = {id_name: frame.index.to_numpy()}
            columns.update({c: frame[c] for c in frame.columns})
            return cls(columns, id_column=id_name, n_rows=len(frame))
        return cls({c: frame[c] for c in frame.columns}, id_column=id_column, n_rows=len(frame))

    @property
    def n_rows(self) -> int:
        """Number of rows."""
        return len(self._frame)

    @property
    def columns(self) -> list[str]:
        """Column names in order."""
        return list(self._frame.columns)

    @property
    def dtypes(self) -> dict[str, Any]:
        """Declared dtype per column."""
        return dict(self._frame.dtypes)

    @property
    def id_column(self) -> Optional[str]:
        """Name of the designated identifier column."""
        return self._id_column

    @property
    def ids(self) -> Optional[pd.Index]:
        """Row identifiers from the identifier column, or None."""
        if self._id_column is None:
            return None
        return pd.Index(self._frame[self._id_column].to_numpy())

    def get_column(self, name: str) -> pd.Series:
        """Return a copy of one column; KeyError if absent."""
        if name not in self._frame.columns:
            raise KeyError(f"no column named {name!r}")
        return self._frame[name].copy()

    def set_column(self, name: str, values: Iterable[Any]) -> None:
        """
        Create or replace a column in place.

        Raises:
            DimensionError: values length differs from n_rows
            TypeError: replacing an existing column with a different dtype
        """
        new = _as_series(values)

        # An empty table with no columns takes its row count from the first column
        established = self._frame.shape[1] > 0 or self.n_rows > 0
        if established and len(new) != self.n_rows:
            raise DimensionError(
                f"column {name!r} has {len(new)} values, table has {self.n_rows} rows"
            )

        if name in self._frame.columns:
            declared = self._frame[name].dtype
            if new.dtype != declared:
                raise TypeError(
                    f"column {name!r} is {declared}, refusing to store {new.dtype}"
                )

        if not established:
            self._frame = pd.DataFrame(index=pd.RangeIndex(len(new)))
        self._frame[name] = new.set_axis(self._frame.index)

    def subset_rows(self, selector: Any) -> MetadataTable:
        """Return a new table with the selected rows, in selection order."""
        positions = resolve_selector(selector, self.n_rows, self.ids)
        return self._with_frame(self._frame.iloc[positions], self._id_column)

    def subset_columns(self, names: Sequence[str]) -> MetadataTable:
        """Return a new table with only ``names``; KeyError on unknown names."""
        names = list(names)
        missing = [n for n in names if n not in self._frame.columns]
        if missing:
            raise KeyError(f"no columns named {missing}")
        id_column = self._id_column if self._id_column in names else None
        return self._with_frame(self._frame[names], id_column)

    def to_frame(self, index_by_id: bool = False) -> pd.DataFrame:
        """Copy out as a DataFrame, optionally indexed by the identifier column."""
        frame = self._frame.copy()
        if index_by_id and self._id_column is not None:
            frame = frame.set_index(self._id_column)
        return frame

    def copy(self) -> MetadataTable:
        return self._with_frame(self._frame.copy(), self._id_column)

    def equals(self, other: MetadataTable) -> bool:
        """Content equality: same columns, dtypes, values and identifier column."""
        if not isinstance(other, MetadataTable):
            return False
        return (
            self._id_column == other._id_column
            and self.n_rows == other.n_rows
            and self._frame.equals(other._frame)
        )

    def _with_frame(self, frame: pd.DataFrame, id_column: Optional[str]) -> MetadataTable:
        table = MetadataTable.__new__(MetadataTable)
        table._frame = frame.reset_index(drop=True)
        table._id_column = id_column
        return table

    def __len__(self) -> int:
        return self.n_rows

    def __contains__(self, name: object) -> bool:
        return name in self._frame.columns

    def __getitem__(self, name: str) -> pd.Series:
        return self.get_column(name)

    def __repr__(self) -> str:
        id_part = f", id_column={self._id_column!r}" if self._id_column else ""
        return f"MetadataTable({self.n_rows} rows × {len(self.columns)} columns{id_part})"
