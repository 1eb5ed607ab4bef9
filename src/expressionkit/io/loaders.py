"""
CSV loaders for assay matrices and metadata tables.

Expected layout (the same one R's ``write.csv`` and pandas ``to_csv``
produce):

```
"","SRR1039508","SRR1039509"
"ENSG00000000003",679,448
"ENSG00000000005",0,0
```

- First column: feature identifiers
- Header: sample identifiers
- Body: numeric values

Metadata files are plain tables with one identifier column. Rows are matched
to the assay by identifier and reordered to the assay's order, so a sample
sheet doesn't need to be sorted the same way as the count matrix.

Examples:
    >>> from expressionkit.io.loaders import load_container
    >>> se = load_container(
    ...     "airway_counts.csv",
    ...     sample_metadata_path="airway_samples.csv",
    ...     sample_id_column="Run",
    ... )
    >>> se.subset_samples(lambda s: s['dex'] == 'trt')
"""

from __future__ import annotations

import json
import logging
import warnings
from pathlib import Path
from typing import Mapping, Optional

import numpy as np
import pandas as pd

from expressionkit.core.container import CoupledContainer
from expressionkit.core.descriptor import ExperimentDescriptor
from expressionkit.core.exceptions import DimensionMismatchError
from expressionkit.core.metadata import MetadataTable

logger = logging.getLogger(__name__)

__all__ = ['load_assay_csv', 'load_metadata_csv', 'load_container', 'read_container']


# Tokens read as missing in value columns; identifier columns never get these
_NA_VALUES = [
    '', '#N/A', 'N/A', 'NA', 'n/a', 'NaN', 'nan', '-NaN', '-nan',
    'NULL', 'null', '<NA>', 'None',
]


def _check_file(path: Path) -> Path:
    if not isinstance(path, Path):
        path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    if not path.is_file():
        raise ValueError(f"Path is not a file: {path}")
    return path


def load_assay_csv(path: Path) -> tuple[np.ndarray, pd.Index, pd.Index]:
    """
    Read a features × samples CSV.

    Identifiers are taken verbatim as text: ``"01"`` stays ``"01"`` and a
    feature named ``NA`` is not treated as missing. Header cells are read
    raw as well, so repeated sample names are seen as duplicates rather
    than being renamed.

    Returns:
        (matrix, feature_ids, sample_ids); identifiers are strings

    Raises:
        FileNotFoundError: path does not exist
        ValueError: empty file, no rows/columns, ragged rows, or non-numeric values
    """
    path = _check_file(path)

    try:
        header = pd.read_csv(path, header=None, nrows=1, dtype=str, keep_default_na=False)
    except pd.errors.EmptyDataError as e:
        raise ValueError(f"CSV file is empty: {path}") from e
    except Exception as e:
        raise ValueError(f"Failed to read CSV file {path}: {e}") from e

    n_columns = header.shape[1]
    if n_columns < 2:
        raise ValueError(f"CSV contains no samples (columns): {path}")
    sample_ids = pd.Index(header.iloc[0, 1:].tolist(), dtype=object)

    try:
        df = pd.read_csv(
            path,
            header=None,
            skiprows=1,
            dtype={0: str},
            keep_default_na=False,
            na_values={j: _NA_VALUES for j in range(1, n_columns)},
        )
    except pd.errors.EmptyDataError as e:
        raise ValueError(f"CSV contains no features (rows): {path}") from e
    except Exception as e:
        raise ValueError(f"Failed to read CSV file {path}: {e}") from e

    if df.shape[0] == 0:
        raise ValueError(f"CSV contains no features (rows): {path}")
    if df.shape[1] != n_columns:
        raise ValueError(
            f"CSV rows have {df.shape[1]} fields but the header has {n_columns}: {path}"
        )

    df = df.set_index(0)
    df.index = pd.Index(df.index.tolist(), dtype=object)
    df.columns = sample_ids

    if df.index.duplicated().any():
        n_duplicates = int(df.index.duplicated().sum())
        warnings.warn(
            f"Found {n_duplicates} duplicate feature IDs in {path.name}. "
            "Using first occurrence of each.",
            UserWarning,
        )
        df = df[~df.index.duplicated(keep='first')]

    if df.columns.duplicated().any():
        n_duplicates = int(df.columns.duplicated().sum())
        warnings.warn(
            f"Found {n_duplicates} duplicate sample IDs in {path.name}. "
            "Using first occurrence of each.",
            UserWarning,
        )
        df = df.iloc[:, ~df.columns.duplicated(keep='first')]

    non_numeric = [c for c in df.columns if not pd.api.types.is_numeric_dtype(df[c])]
    if non_numeric:
        examples = ", ".join(repr(c) for c in non_numeric[:5])
        raise ValueError(
            f"CSV contains non-numeric values in sample columns: {examples}"
            + (" ..." if len(non_numeric) > 5 else "")
        )

    data = df.to_numpy()
    if np.issubdtype(data.dtype, np.floating) and np.isnan(data).any():
        n_nan = int(np.isnan(data).sum())
        warnings.warn(
            f"Found {n_nan:,} NaN values ({100 * n_nan / data.size:.2f}% of data) in {path.name}.",
            UserWarning,
        )

    logger.info(f"Loaded assay {path.name}: {data.shape[0]} features × {data.shape[1]} samples")
    return data, pd.Index(df.index), pd.Index(df.columns)


def load_metadata_csv(
    path: Path,
    id_column: Optional[str] = None,
    dtypes: Optional[Mapping[str, str]] = None,
) -> MetadataTable:
    """
    Read a metadata table; ``id_column`` defaults to the first column.

    Identifiers are read verbatim as strings so they match assay headers.
    Other columns are inferred by pandas unless ``dtypes`` (column -> dtype
    name, as recorded in a container manifest) pins them.
    """
    path = _check_file(path)
    try:
        names = [str(c) for c in pd.read_csv(path, nrows=0).columns]
    except pd.errors.EmptyDataError as e:
        raise ValueError(f"CSV file is empty: {path}") from e

    if not names:
        raise ValueError(f"Metadata file has no columns: {path}")

    if id_column is None:
        id_column = names[0]
    if id_column not in names:
        raise KeyError(f"id column {id_column!r} not in {path.name}: {names}")

    dtypes = {c: d for c, d in (dtypes or {}).items() if c in names and c != id_column}
    parse_dates = [c for c, d in dtypes.items() if str(d).startswith('datetime64')]
    read_dtypes = {c: d for c, d in dtypes.items() if c not in parse_dates}
    read_dtypes[id_column] = str

    try:
        frame = pd.read_csv(
            path,
            dtype=read_dtypes,
            keep_default_na=False,
            na_values={c: _NA_VALUES for c in names if c != id_column},
            parse_dates=parse_dates or False,
        )
    except (TypeError, ValueError) as e:
        raise ValueError(f"Failed to read metadata file {path}: {e}") from e

    # pandas names an unnamed index column "Unnamed: 0"
    if id_column.startswith('Unnamed'):
        frame = frame.rename(columns={id_column: 'id'})
        id_column = 'id'

    if frame[id_column].duplicated().any():
        dupes = frame.loc[frame[id_column].duplicated(), id_column].tolist()[:5]
        raise ValueError(f"Duplicate identifiers in {path.name}: {dupes}")

    return MetadataTable.from_frame(frame, id_column=id_column)


def _align(table: MetadataTable, ids: pd.Index, label: str, source: Path) -> MetadataTable:
    """Reorder ``table`` to ``ids``; extra rows are dropped, missing rows are an error."""
    table_ids = table.ids
    positions = table_ids.get_indexer(ids)
    missing = ids[positions < 0]
    if len(missing):
        raise DimensionMismatchError(
            f"{len(missing)} {label} identifiers missing from {source.name}: "
            f"{list(missing[:5])}"
        )
    n_extra = table.n_rows - len(ids)
    if n_extra:
        logger.info(f"Dropping {n_extra} {label} rows from {source.name} not present in assay")
    return table.subset_rows(positions)


def load_container(
    assay_path: Path,
    sample_metadata_path: Optional[Path] = None,
    feature_metadata_path: Optional[Path] = None,
    sample_id_column: Optional[str] = None,
    feature_id_column: Optional[str] = None,
    slot: str = 'counts',
) -> CoupledContainer:
    """
    Build a CoupledContainer from an assay CSV and optional metadata CSVs.

    Raises:
        DimensionMismatchError: an assay identifier is missing from a metadata file
    """
    data, feature_ids, sample_ids = load_assay_csv(assay_path)

    samples = None
    if sample_metadata_path is not None:
        samples = _align(
            load_metadata_csv(sample_metadata_path, sample_id_column),
            sample_ids, 'sample', Path(sample_metadata_path),
        )
    features = None
    if feature_metadata_path is not None:
        features = _align(
            load_metadata_csv(feature_metadata_path, feature_id_column),
            feature_ids, 'feature', Path(feature_metadata_path),
        )

    return CoupledContainer(
        assays={slot: data},
        sample_metadata=samples,
        feature_metadata=features,
        feature_ids=feature_ids,
        sample_ids=sample_ids,
    )


def read_container(prefix: Path) -> CoupledContainer:
    """
    Read a container written by :func:`expressionkit.io.writers.write_container`.

    Reads ``{prefix}.manifest.json`` for slot names, identifier columns,
    metadata column dtypes and the descriptor, then the per-slot and
    metadata CSVs. Identifiers always come back as strings.
    """
    prefix = Path(prefix)
    manifest_path = _check_file(Path(f"{prefix}.manifest.json"))
    with open(manifest_path) as f:
        manifest = json.load(f)

    slots = {}
    feature_ids = sample_ids = None
    for name in manifest['slots']:
        data, f_ids, s_ids = load_assay_csv(Path(f"{prefix}.{name}.csv"))
        if feature_ids is not None and not (f_ids.equals(feature_ids) and s_ids.equals(sample_ids)):
            raise DimensionMismatchError(f"assay {name!r} identifiers differ from other slots")
        feature_ids, sample_ids = f_ids, s_ids
        slots[name] = data

    samples = load_metadata_csv(
        Path(f"{prefix}.samples.csv"),
        manifest['sample_id_column'],
        manifest.get('sample_dtypes'),
    )
    features = load_metadata_csv(
        Path(f"{prefix}.features.csv"),
        manifest['feature_id_column'],
        manifest.get('feature_dtypes'),
    )

    descriptor = None
    if manifest.get('descriptor') is not None:
        descriptor = ExperimentDescriptor.from_dict(manifest['descriptor'])

    return CoupledContainer(
        assays=slots,
        sample_metadata=samples,
        feature_metadata=features,
        descriptor=descriptor,
        feature_ids=feature_ids,
        sample_ids=sample_ids,
    )
