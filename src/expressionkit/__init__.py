"""
expressionkit - Organize expression data with its metadata.

Bundles assay matrices with sample and feature annotations in a container
that stays consistent under filtering and subsetting, and loads data from
CSV tables, BAM alignment files and PubMed records.
"""

__version__ = "0.1.0"

from expressionkit.core.assays import AssayStore
from expressionkit.core.container import CoupledContainer
from expressionkit.core.descriptor import ExperimentDescriptor
from expressionkit.core.exceptions import (
    DimensionError,
    DimensionMismatchError,
    InvariantViolation,
)
from expressionkit.core.metadata import MetadataTable

__all__ = [
    "AssayStore",
    "CoupledContainer",
    "ExperimentDescriptor",
    "MetadataTable",
    "DimensionError",
    "DimensionMismatchError",
    "InvariantViolation",
]
