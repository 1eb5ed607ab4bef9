"""
I/O for coupled containers.

Key Functions:
    - load_container: assay CSV + metadata CSVs -> CoupledContainer
    - write_container / read_container: round-trip a container on disk
    - summarize_overlaps: BAM files + regions -> count CoupledContainer

Examples:
    >>> from expressionkit.io import load_container, write_container
    >>> se = load_container("counts.csv", sample_metadata_path="samples.csv")
    >>> write_container(se.subset_samples([0, 1]), "results/pilot")
"""

from expressionkit.io.alignments import (
    AlignmentFileSet,
    GenomicRegion,
    count_overlaps,
    parse_region,
    read_bed,
    summarize_overlaps,
)
from expressionkit.io.loaders import (
    load_assay_csv,
    load_container,
    load_metadata_csv,
    read_container,
)
from expressionkit.io.writers import write_container, write_metadata

__all__ = [
    'load_assay_csv',
    'load_metadata_csv',
    'load_container',
    'read_container',
    'write_container',
    'write_metadata',
    'AlignmentFileSet',
    'GenomicRegion',
    'count_overlaps',
    'parse_region',
    'read_bed',
    'summarize_overlaps',
]
