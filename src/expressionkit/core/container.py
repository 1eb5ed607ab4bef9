"""
Coupled assay container: matrices + sample metadata + feature metadata.

CoupledContainer binds one AssayStore to one per-sample MetadataTable and one
per-feature MetadataTable, and keeps all three aligned under every subset and
mutation. It is the structure analysts reach for once juggling a count
matrix, a sample sheet and a gene annotation table as three loose objects
starts to go wrong.

Biological Context:
    A typical RNA-seq experiment produces:
    - A count matrix (genes × samples)
    - A sample sheet (treatment, cell line, batch per sample)
    - A gene annotation table (symbol, biotype, location per gene)

    Filtering genes or dropping a failed sample must touch all three in
    lockstep. Reordering one without the others silently pairs measurements
    with the wrong labels, which is the failure this container prevents.

Engineering Design:
    - Invariant checked at construction and after every mutation:
        * assay rows == feature metadata rows == len(feature_ids)
        * assay columns == sample metadata rows == len(sample_ids)
        * the metadata identifier columns equal feature_ids / sample_ids
    - Subsetting returns a new container; the receiver is never touched
    - Mutations build candidate parts, validate, then swap (no partial writes)
    - Assay matrices are shared by reference; ``copy()`` isolates

Examples:
    >>> import numpy as np
    >>> from expressionkit import CoupledContainer, MetadataTable
    >>> counts = np.array([[10, 20], [30, 40], [50, 60]])
    >>> samples = MetadataTable({'sample_id': ['s1', 's2'], 'group': ['ctrl', 'trt']},
    ...                         id_column='sample_id')
    >>> genes = MetadataTable({'gene_id': ['g1', 'g2', 'g3']}, id_column='gene_id')
    >>> se = CoupledContainer(counts, samples, genes)
    >>> sub = se.subset_features([0, 2])
    >>> list(sub.feature_ids)
    ['g1', 'g3']
"""

from __future__ import annotations

import copy as _copy
import logging
from typing import Any, Callable, List, Mapping, Optional, Union

import numpy as np
import pandas as pd
from scipy import sparse

from expressionkit.core.assays import AssayStore
from expressionkit.core.descriptor import ExperimentDescriptor
from expressionkit.core.exceptions import DimensionMismatchError, InvariantViolation
from expressionkit.core.metadata import MetadataTable, resolve_selector

logger = logging.getLogger(__name__)

__all__ = ['CoupledContainer', 'PRIMARY_SLOT']

PRIMARY_SLOT = 'counts'

Selector = Union[Callable[[pd.DataFrame], Any], np.ndarray, pd.Series, List[Any], slice]


def _as_store(assays: Any) -> tuple[AssayStore, Optional[pd.Index], Optional[pd.Index]]:
    """Coerce the ``assays`` argument; DataFrames also contribute identifiers."""
    if isinstance(assays, AssayStore):
        return assays, None, None
    if isinstance(assays, pd.DataFrame):
        store = AssayStore({PRIMARY_SLOT: assays.to_numpy()})
        return store, pd.Index(assays.index), pd.Index(assays.columns)
    if isinstance(assays, Mapping):
        return AssayStore(assays), None, None
    return AssayStore({PRIMARY_SLOT: assays}), None, None


def _as_table(
    metadata: Union[MetadataTable, pd.DataFrame, None],
    ids: Optional[pd.Index],
    n: int,
    id_name: str,
) -> MetadataTable:
    if isinstance(metadata, MetadataTable):
        return metadata
    if isinstance(metadata, pd.DataFrame):
        return MetadataTable.from_frame(metadata)
    if metadata is not None:
        raise TypeError(
            f"metadata must be MetadataTable or pd.DataFrame, got {type(metadata)}"
        )
    # No metadata supplied: a bare table holding only the identifiers
    if ids is not None:
        return MetadataTable({id_name: ids.to_numpy()}, id_column=id_name)
    return MetadataTable(n_rows=n)


def _consistency_problems(
    store: AssayStore,
    features: MetadataTable,
    samples: MetadataTable,
    feature_ids: pd.Index,
    sample_ids: pd.Index,
) -> list[str]:
    """Every violated shape/identifier invariant, as messages."""
    problems = []
    if len(store) == 0:
        return ["container holds no assays"]

    n_features, n_samples = store.shape
    for name, matrix in store.items():
        if matrix.shape != store.shape:
            problems.append(f"assay {name!r} has shape {matrix.shape}, store is {store.shape}")

    if features.n_rows != n_features:
        problems.append(
            f"feature metadata has {features.n_rows} rows, assays have {n_features} features"
        )
    if samples.n_rows != n_samples:
        problems.append(
            f"sample metadata has {samples.n_rows} rows, assays have {n_samples} samples"
        )
    if len(feature_ids) != n_features:
        problems.append(
            f"{len(feature_ids)} feature identifiers for {n_features} assay rows"
        )
    if len(sample_ids) != n_samples:
        problems.append(
            f"{len(sample_ids)} sample identifiers for {n_samples} assay columns"
        )

    for label, ids in (('feature', feature_ids), ('sample', sample_ids)):
        if not ids.is_unique:
            dupes = ids[ids.duplicated()].unique().tolist()[:5]
            problems.append(f"duplicate {label} identifiers: {dupes}")

    for label, table, ids in (('feature', features, feature_ids), ('sample', samples, sample_ids)):
        table_ids = table.ids
        if table_ids is None or len(table_ids) != len(ids):
            continue
        if not np.array_equal(table_ids.to_numpy(dtype=object), ids.to_numpy(dtype=object)):
            mismatch = np.flatnonzero(
                table_ids.to_numpy(dtype=object) != ids.to_numpy(dtype=object)
            )
            first = int(mismatch[0])
            problems.append(
                f"{label} identifier column {table.id_column!r} is out of alignment "
                f"at position {first}: metadata has {table_ids[first]!r}, "
                f"assays have {ids[first]!r}"
            )
    return problems


class CoupledContainer:
    """
    Assays + sample metadata + feature metadata, kept dimensionally consistent.

    Attributes:
        assays: The AssayStore (matrices shared by reference)
        sample_metadata: MetadataTable with one row per sample (column)
        feature_metadata: MetadataTable with one row per feature (row)
        feature_ids: Row identifiers
        sample_ids: Column identifiers
        descriptor: Attached ExperimentDescriptor, or None

    Shape Invariants:
        - assays.shape == (len(feature_ids), len(sample_ids))
        - feature_metadata.n_rows == n_features
        - sample_metadata.n_rows == n_samples
        - feature_metadata.ids equals feature_ids (when an id column is set)
        - sample_metadata.ids equals sample_ids (when an id column is set)
    """

    def __init__(
        self,
        assays: Any,
        sample_metadata: Union[MetadataTable, pd.DataFrame, None] = None,
        feature_metadata: Union[MetadataTable, pd.DataFrame, None] = None,
        descriptor: Optional[ExperimentDescriptor] = None,
        feature_ids: Optional[Any] = None,
        sample_ids: Optional[Any] = None,
    ):
        """
        Build a container from matching matrices and tables.

        Args:
            assays: AssayStore, mapping of slot -> matrix, a single matrix
                (stored as ``"counts"``), or a DataFrame whose index/columns
                become feature/sample identifiers
            sample_metadata: One row per assay column
            feature_metadata: One row per assay row
            descriptor: Optional study-level metadata
            feature_ids: Row identifiers; default taken from the feature
                table's identifier column
            sample_ids: Column identifiers; default taken from the sample
                table's identifier column

        Raises:
            DimensionMismatchError: Counts disagree across inputs, or the
                identifier columns don't line up positionally
            TypeError: An input has an unsupported type
        """
        if descriptor is not None and not isinstance(descriptor, ExperimentDescriptor):
            raise TypeError(
                f"descriptor must be ExperimentDescriptor, got {type(descriptor)}"
            )

        store, frame_feature_ids, frame_sample_ids = _as_store(assays)
        if feature_ids is None:
            feature_ids = frame_feature_ids
        if sample_ids is None:
            sample_ids = frame_sample_ids
        feature_ids = pd.Index(feature_ids) if feature_ids is not None else None
        sample_ids = pd.Index(sample_ids) if sample_ids is not None else None

        n_features, n_samples = store.shape if store.shape else (0, 0)
        features = _as_table(feature_metadata, feature_ids, n_features, 'feature_id')
        samples = _as_table(sample_metadata, sample_ids, n_samples, 'sample_id')

        if feature_ids is None:
            feature_ids = features.ids if features.ids is not None else pd.RangeIndex(features.n_rows)
        if sample_ids is None:
            sample_ids = samples.ids if samples.ids is not None else pd.RangeIndex(samples.n_rows)

        problems = _consistency_problems(store, features, samples, feature_ids, sample_ids)
        if problems:
            raise DimensionMismatchError("; ".join(problems))

        self._assays = store
        self._features = features
        self._samples = samples
        self._feature_ids = feature_ids
        self._sample_ids = sample_ids
        self._descriptor = descriptor

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def assays(self) -> AssayStore:
        return self._assays

    @property
    def sample_metadata(self) -> MetadataTable:
        return self._samples

    @property
    def feature_metadata(self) -> MetadataTable:
        return self._features

    @property
    def feature_ids(self) -> pd.Index:
        """Row identifiers (genes, probes, regions)."""
        return self._feature_ids

    @property
    def sample_ids(self) -> pd.Index:
        """Column identifiers (samples, libraries, BAM files)."""
        return self._sample_ids

    @property
    def descriptor(self) -> Optional[ExperimentDescriptor]:
        return self._descriptor

    @property
    def shape(self) -> tuple[int, int]:
        """(n_features, n_samples)."""
        return self._assays.shape

    @property
    def n_features(self) -> int:
        return self._assays.n_features

    @property
    def n_samples(self) -> int:
        return self._assays.n_samples

    def assay(self, name: Optional[str] = None) -> Any:
        """
        Return one assay matrix by reference.

        With no name, returns the ``"counts"`` slot if present, otherwise the
        first slot.
        """
        if name is None:
            name = PRIMARY_SLOT if PRIMARY_SLOT in self._assays else self._assays.names[0]
        return self._assays.get(name)

    def to_frame(self, name: Optional[str] = None) -> pd.DataFrame:
        """One assay as a labelled DataFrame (features × samples), densified."""
        matrix = self.assay(name)
        if sparse.issparse(matrix):
            matrix = matrix.toarray()
        return pd.DataFrame(matrix, index=self._feature_ids, columns=self._sample_ids)

    # ------------------------------------------------------------------
    # Subsetting
    # ------------------------------------------------------------------

    def _positions(self, selector: Selector, table: MetadataTable, ids: pd.Index) -> np.ndarray:
        if callable(selector):
            selector = selector(table.to_frame())
        return resolve_selector(selector, table.n_rows, ids)

    def subset_features(self, selector: Selector) -> CoupledContainer:
        """
        New container restricted to the selected features (rows).

        Args:
            selector: Integer positions, boolean mask, feature identifiers,
                or a callable taking the feature metadata DataFrame and
                returning a mask. Integers are positions even when the
                feature identifiers are integers; select those with
                ``np.isin(se.feature_ids, wanted)``

        Examples:
            >>> coding = se.subset_features(lambda f: f['biotype'] == 'protein_coding')
            >>> first_ten = se.subset_features(range(10))
        """
        rows = self._positions(selector, self._features, self._feature_ids)
        return self._subset(rows, None)

    def subset_samples(self, selector: Selector) -> CoupledContainer:
        """
        New container restricted to the selected samples (columns).

        Takes the same selectors as :meth:`subset_features`; integers are
        positions, never sample identifiers.

        Examples:
            >>> treated = se.subset_samples(lambda s: s['dex'] == 'trt')
            >>> two = se.subset_samples(['SRR1039508', 'SRR1039509'])
        """
        cols = self._positions(selector, self._samples, self._sample_ids)
        return self._subset(None, cols)

    def __getitem__(self, key: Any) -> CoupledContainer:
        """``container[rows, cols]`` with the same selectors as subset_*."""
        if isinstance(key, tuple):
            if len(key) != 2:
                raise IndexError(f"expected [rows, cols], got {len(key)} indices")
            row_key, col_key = key
        else:
            row_key, col_key = key, slice(None)
        rows = self._positions(row_key, self._features, self._feature_ids)
        cols = self._positions(col_key, self._samples, self._sample_ids)
        return self._subset(rows, cols)

    def _subset(self, rows: Optional[np.ndarray], cols: Optional[np.ndarray]) -> CoupledContainer:
        features = self._features if rows is None else self._features.subset_rows(rows)
        samples = self._samples if cols is None else self._samples.subset_rows(cols)
        feature_ids = self._feature_ids if rows is None else self._feature_ids[rows]
        sample_ids = self._sample_ids if cols is None else self._sample_ids[cols]

        logger.debug(
            "Subsetting %d×%d container to %d×%d",
            self.n_features, self.n_samples, len(feature_ids), len(sample_ids),
        )
        # Constructor re-validates; nothing on self is touched
        return CoupledContainer(
            assays=self._assays.subset(rows, cols),
            sample_metadata=samples,
            feature_metadata=features,
            descriptor=_copy.deepcopy(self._descriptor),
            feature_ids=feature_ids,
            sample_ids=sample_ids,
        )

    # ------------------------------------------------------------------
    # Mutation (validate-then-swap)
    # ------------------------------------------------------------------

    def attach_descriptor(self, descriptor: ExperimentDescriptor) -> None:
        """Attach study-level metadata, replacing any previous descriptor."""
        if not isinstance(descriptor, ExperimentDescriptor):
            raise TypeError(
                f"descriptor must be ExperimentDescriptor, got {type(descriptor)}"
            )
        self._descriptor = descriptor

    def set_assay(self, name: str, matrix: Any) -> None:
        """
        Add or replace an assay slot.

        Raises:
            DimensionMismatchError: ``matrix`` doesn't match the container's shape
        """
        candidate = AssayStore(dict(self._assays.items()))
        candidate.set(name, matrix)
        self._commit(assays=candidate)

    def remove_assay(self, name: str) -> None:
        """Drop an assay slot; the last remaining slot cannot be removed."""
        candidate = AssayStore(dict(self._assays.items()))
        candidate.remove(name)
        self._commit(assays=candidate)

    def set_sample_column(self, name: str, values: Any) -> None:
        """Add or replace one sample metadata column."""
        candidate = self._samples.copy()
        candidate.set_column(name, values)
        self._commit(samples=candidate)

    def set_feature_column(self, name: str, values: Any) -> None:
        """Add or replace one feature metadata column."""
        candidate = self._features.copy()
        candidate.set_column(name, values)
        self._commit(features=candidate)

    def _commit(
        self,
        assays: Optional[AssayStore] = None,
        samples: Optional[MetadataTable] = None,
        features: Optional[MetadataTable] = None,
    ) -> None:
        assays = assays if assays is not None else self._assays
        samples = samples if samples is not None else self._samples
        features = features if features is not None else self._features
        problems = _consistency_problems(
            assays, features, samples, self._feature_ids, self._sample_ids
        )
        if problems:
            raise DimensionMismatchError("; ".join(problems))
        self._assays = assays
        self._samples = samples
        self._features = features

    # ------------------------------------------------------------------
    # Validation, copying, comparison
    # ------------------------------------------------------------------

    def validate(self) -> None:
        """
        Recompute every shape and identifier invariant.

        Raises:
            InvariantViolation: Any invariant fails (nothing is repaired)
        """
        problems = _consistency_problems(
            self._assays, self._features, self._samples,
            self._feature_ids, self._sample_ids,
        )
        if problems:
            raise InvariantViolation("; ".join(problems))

    def copy(self, deep: bool = True) -> CoupledContainer:
        """
        Copy this container.

        Args:
            deep: If True, copy matrices and tables. If False, the new
                container shares matrices with this one (in-place edits show
                through in both)
        """
        if deep:
            return CoupledContainer(
                assays=self._assays.copy(),
                sample_metadata=self._samples.copy(),
                feature_metadata=self._features.copy(),
                descriptor=_copy.deepcopy(self._descriptor),
                feature_ids=self._feature_ids.copy(),
                sample_ids=self._sample_ids.copy(),
            )
        return CoupledContainer(
            assays=AssayStore(dict(self._assays.items())),
            sample_metadata=self._samples,
            feature_metadata=self._features,
            descriptor=self._descriptor,
            feature_ids=self._feature_ids,
            sample_ids=self._sample_ids,
        )

    def equals(self, other: CoupledContainer) -> bool:
        """Content equality, ignoring object identity."""
        if not isinstance(other, CoupledContainer):
            return False
        return (
            self._feature_ids.equals(other._feature_ids)
            and self._sample_ids.equals(other._sample_ids)
            and self._assays.equals(other._assays)
            and self._features.equals(other._features)
            and self._samples.equals(other._samples)
            and self._descriptor == other._descriptor
        )

    def __repr__(self) -> str:
        def _span(ids: pd.Index) -> str:
            if len(ids) == 0:
                return "<none>"
            if len(ids) == 1:
                return str(ids[0])
            return f"{ids[0]}...{ids[-1]}"

        lines = [
            f"CoupledContainer({self.n_features} features × {self.n_samples} samples)",
            f"  Assays: {self._assays.names}",
            f"  Features: {_span(self._feature_ids)}",
            f"  Samples: {_span(self._sample_ids)}",
            f"  Feature metadata columns: {self._features.columns}",
            f"  Sample metadata columns: {self._samples.columns}",
        ]
        if self._descriptor is not None:
            lines.append(f"  Descriptor: {self._descriptor.title or '<untitled>'}")
        return "\n".join(lines)
