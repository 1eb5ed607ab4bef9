"""
Core data structures for coupled assay data.

1. MetadataTable: typed per-sample / per-feature annotation table
2. AssayStore: named matrices sharing one features × samples shape
3. CoupledContainer: assays + both metadata tables, kept aligned
4. ExperimentDescriptor: study-level metadata (title, lab, PubMed ids)
5. Transform: pure container → container operations

Examples:
    >>> from expressionkit.core import CoupledContainer, MetadataTable
    >>> se = CoupledContainer(counts, sample_table, gene_table)
    >>> se.subset_samples(lambda s: s['dex'] == 'trt').validate()
"""

from expressionkit.core.assays import AssayStore
from expressionkit.core.container import CoupledContainer, PRIMARY_SLOT
from expressionkit.core.descriptor import ExperimentDescriptor
from expressionkit.core.exceptions import (
    DimensionError,
    DimensionMismatchError,
    ExpressionKitError,
    InvariantViolation,
)
from expressionkit.core.metadata import MetadataTable
from expressionkit.core.transform import FilterLowCounts, LogTransform, Transform

__all__ = [
    'AssayStore',
    'CoupledContainer',
    'PRIMARY_SLOT',
    'ExperimentDescriptor',
    'MetadataTable',
    'Transform',
    'LogTransform',
    'FilterLowCounts',
    'ExpressionKitError',
    'DimensionMismatchError',
    'DimensionError',
    'InvariantViolation',
]
