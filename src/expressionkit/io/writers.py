"""
CSV writers for coupled containers.

Output files for ``write_container(se, Path("out/airway"))``:

- ``out/airway.counts.csv`` (one file per assay slot; features × samples)
- ``out/airway.samples.csv`` (sample metadata, identifier column first)
- ``out/airway.features.csv`` (feature metadata, identifier column first)
- ``out/airway.manifest.json`` (slots, identifier columns, column dtypes, descriptor)

Every file is written atomically. The layout reads back into R with
``read.csv(..., row.names = 1)`` and into Python with
:func:`expressionkit.io.loaders.read_container`.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd

from expressionkit.core.container import CoupledContainer
from expressionkit.core.metadata import MetadataTable
from expressionkit.utils.fileio import atomic_write_frame, atomic_write_json

logger = logging.getLogger(__name__)

__all__ = ['write_container', 'write_metadata']


def _with_ids(table: MetadataTable, ids: pd.Index, default_name: str) -> tuple[pd.DataFrame, str]:
    """Metadata as a frame whose first column holds the identifiers."""
    frame = table.to_frame()
    id_column = table.id_column
    if id_column is None:
        if default_name in frame.columns:
            raise ValueError(
                f"metadata has a {default_name!r} column but no identifier column; "
                "designate one before writing"
            )
        frame.insert(0, default_name, ids.to_numpy())
        id_column = default_name
    else:
        frame = frame[[id_column] + [c for c in frame.columns if c != id_column]]
    return frame, id_column


def write_metadata(
    table: MetadataTable, ids: pd.Index, path: Path, default_name: str = 'id',
) -> tuple[str, dict[str, str]]:
    """
    Write one metadata table.

    Returns:
        (identifier column name, column -> dtype name) for the manifest
    """
    frame, id_column = _with_ids(table, ids, default_name)
    atomic_write_frame(path, frame, index=False)
    logger.info(f"Wrote metadata ({len(frame)} rows) to {path}")
    return id_column, {str(c): str(t) for c, t in frame.dtypes.items()}


def write_container(container: CoupledContainer, prefix: Path) -> None:
    """
    Write all slots, both metadata tables and the manifest.

    Raises:
        TypeError: container is not a CoupledContainer
        OSError: an output file could not be written
    """
    if not isinstance(container, CoupledContainer):
        raise TypeError(f"container must be CoupledContainer, got {type(container)}")

    prefix = Path(prefix)
    if prefix.parent != Path('.') and not prefix.parent.exists():
        prefix.parent.mkdir(parents=True, exist_ok=True)

    container.validate()

    for name in container.assays.names:
        path = Path(f"{prefix}.{name}.csv")
        try:
            atomic_write_frame(path, container.to_frame(name))
        except OSError as e:
            raise OSError(f"Failed to write assay file {path}: {e}") from e
        logger.info(f"Wrote assay {name!r} to {path}")

    sample_id_column, sample_dtypes = write_metadata(
        container.sample_metadata, container.sample_ids,
        Path(f"{prefix}.samples.csv"), 'sample_id',
    )
    feature_id_column, feature_dtypes = write_metadata(
        container.feature_metadata, container.feature_ids,
        Path(f"{prefix}.features.csv"), 'feature_id',
    )

    descriptor = container.descriptor
    atomic_write_json(
        Path(f"{prefix}.manifest.json"),
        {
            'slots': container.assays.names,
            'shape': list(container.shape),
            'sample_id_column': sample_id_column,
            'feature_id_column': feature_id_column,
            'sample_dtypes': sample_dtypes,
            'feature_dtypes': feature_dtypes,
            'descriptor': descriptor.to_dict() if descriptor is not None else None,
        },
    )
