"""
BAM alignment files and read counting over genomic regions.

Wraps pysam so that sequencing alignments feed straight into a
CoupledContainer: count the reads overlapping each region of interest in each
BAM file, and the result is a regions × files count matrix with the regions
as feature metadata and the files as sample metadata.

Biological Context:
    After alignment, each sequencing library is a coordinate-sorted, indexed
    BAM file. Quantifying a gene or peak means counting reads whose alignment
    overlaps its coordinates. Reads that are unmapped, secondary or
    supplementary alignments, QC failures or PCR duplicates are excluded so
    each molecule counts once.

Coordinates:
    GenomicRegion uses 0-based, half-open coordinates (the pysam/BED
    convention). ``parse_region`` accepts samtools-style 1-based inclusive
    strings ("chr1:1,001-2,000") and converts them.

Examples:
    >>> from expressionkit.io.alignments import AlignmentFileSet, parse_region, summarize_overlaps
    >>> regions = [parse_region("chr4:1,000-20,000", name="geneA")]
    >>> with AlignmentFileSet(["ctrl.bam", "trt.bam"], genome="hg19") as bams:
    ...     print(bams.reference_table().to_frame().head())
    ...     se = summarize_overlaps(regions, bams)
"""

from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence, Union

import numpy as np
import pandas as pd
import pysam

from expressionkit.core.container import CoupledContainer
from expressionkit.core.descriptor import ExperimentDescriptor
from expressionkit.core.exceptions import DimensionMismatchError
from expressionkit.core.metadata import MetadataTable

logger = logging.getLogger(__name__)

__all__ = [
    'GenomicRegion',
    'parse_region',
    'read_bed',
    'AlignmentFileSet',
    'count_overlaps',
    'summarize_overlaps',
]

_REGION_RE = re.compile(r'^(?P<contig>[^:\s]+)(?::(?P<start>[\d,]+)(?:-(?P<end>[\d,]+))?)?$')


@dataclass(frozen=True)
class GenomicRegion:
    """
    A genomic interval, 0-based half-open.

    Attributes:
        contig: Reference sequence name (e.g., "chr1")
        start: 0-based start (inclusive)
        end: 0-based end (exclusive); None means "to the end of the contig"
        name: Optional label (gene symbol, peak id)
    """
    contig: str
    start: int = 0
    end: Optional[int] = None
    name: Optional[str] = None

    def __post_init__(self):
        if self.start < 0:
            raise ValueError(f"region start must be >= 0, got {self.start}")
        if self.end is not None and self.end < self.start:
            raise ValueError(f"region end ({self.end}) precedes start ({self.start})")

    @property
    def label(self) -> str:
        """Name if set, otherwise samtools-style coordinates."""
        if self.name:
            return self.name
        if self.end is None:
            return self.contig if self.start == 0 else f"{self.contig}:{self.start + 1}"
        return f"{self.contig}:{self.start + 1}-{self.end}"

    @property
    def width(self) -> Optional[int]:
        return None if self.end is None else self.end - self.start


def parse_region(text: str, name: Optional[str] = None) -> GenomicRegion:
    """
    Parse "chr1", "chr1:1000" or "chr1:1,000-2,000" (1-based, inclusive).

    Raises:
        ValueError: Unparseable region string
    """
    match = _REGION_RE.match(text.strip())
    if match is None:
        raise ValueError(f"Cannot parse region {text!r}; expected contig[:start[-end]]")
    start = match.group('start')
    end = match.group('end')
    start0 = int(start.replace(',', '')) - 1 if start else 0
    if start0 < 0:
        raise ValueError(f"Region start must be >= 1 in {text!r}")
    end0 = int(end.replace(',', '')) if end else None
    return GenomicRegion(match.group('contig'), start0, end0, name)


def read_bed(path: Union[str, Path]) -> List[GenomicRegion]:
    """
    Read regions from a BED file (chrom, start, end[, name, ...]).

    ``track``/``browser`` header lines and ``#`` comments are skipped.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"BED file not found: {path}")
    lines = [
        line for line in path.read_text().splitlines()
        if line.strip() and not line.startswith(('#', 'track', 'browser'))
    ]
    if not lines:
        raise ValueError(f"BED file contains no regions: {path}")

    bed = pd.read_csv(io.StringIO("\n".join(lines)), sep='\t', header=None, dtype={0: str})
    if bed.shape[1] < 3:
        raise ValueError(f"BED file needs at least 3 columns, got {bed.shape[1]}: {path}")

    regions = []
    for row in bed.itertuples(index=False):
        name = str(row[3]) if bed.shape[1] > 3 and not pd.isna(row[3]) else None
        regions.append(GenomicRegion(row[0], int(row[1]), int(row[2]), name))
    return regions


class AlignmentFileSet:
    """
    A collection of indexed BAM files opened together.

    Attributes:
        paths: BAM file paths
        names: Sample names (file names without ``.bam``)
        genome: Genome build label (e.g., "hg19"); free to reassign

    Raises (on construction):
        FileNotFoundError: A BAM, or its index when ``index=False``, is missing
    """

    def __init__(
        self,
        paths: Iterable[Union[str, Path]],
        genome: Optional[str] = None,
        index: bool = False,
    ):
        self.paths = [Path(p) for p in paths]
        if not self.paths:
            raise ValueError("AlignmentFileSet needs at least one BAM file")
        self.genome = genome
        self._handles: List[pysam.AlignmentFile] = []
        try:
            for path in self.paths:
                self._handles.append(self._open(path, index))
        except BaseException:
            self.close()
            raise

    @staticmethod
    def _open(path: Path, index: bool) -> pysam.AlignmentFile:
        if not path.exists():
            raise FileNotFoundError(f"BAM file not found: {path}")
        handle = pysam.AlignmentFile(str(path), "rb")
        if not handle.has_index():
            handle.close()
            if not index:
                raise FileNotFoundError(
                    f"No index (.bai/.csi) for {path}; run `samtools index` or pass index=True"
                )
            logger.info(f"Indexing {path}")
            pysam.index(str(path))
            handle = pysam.AlignmentFile(str(path), "rb")
        logger.debug(f"Opened {path} ({handle.nreferences} references)")
        return handle

    @property
    def names(self) -> List[str]:
        return [p.name[:-4] if p.name.endswith('.bam') else p.name for p in self.paths]

    @property
    def handles(self) -> List[pysam.AlignmentFile]:
        return list(self._handles)

    def reference_table(self) -> MetadataTable:
        """
        Reference sequences (name, length, genome) shared by all files.

        Raises:
            DimensionMismatchError: Files disagree on their reference sequences
        """
        first = self._handles[0]
        names, lengths = list(first.references), list(first.lengths)
        for path, handle in zip(self.paths[1:], self._handles[1:]):
            if list(handle.references) != names or list(handle.lengths) != lengths:
                raise DimensionMismatchError(
                    f"{path} has different reference sequences than {self.paths[0]}"
                )
        return MetadataTable(
            {
                'seqname': names,
                'length': np.asarray(lengths, dtype=np.int64),
                'genome': [self.genome] * len(names),
            },
            id_column='seqname',
        )

    def close(self) -> None:
        for handle in self._handles:
            handle.close()
        self._handles = []

    def __enter__(self) -> AlignmentFileSet:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __len__(self) -> int:
        return len(self.paths)

    def __iter__(self) -> Iterator[pysam.AlignmentFile]:
        return iter(self._handles)

    def __repr__(self) -> str:
        return f"AlignmentFileSet({len(self)} files, genome={self.genome!r})"


def _counts_read(read: pysam.AlignedSegment, min_mapq: int) -> bool:
    return not (
        read.is_unmapped
        or read.is_secondary
        or read.is_supplementary
        or read.is_qcfail
        or read.is_duplicate
        or read.mapping_quality < min_mapq
    )


def _count_region(handle: pysam.AlignmentFile, region: GenomicRegion, min_mapq: int) -> int:
    if region.contig not in handle.references:
        raise KeyError(f"contig {region.contig!r} not in {handle.filename.decode()}")
    end = region.end if region.end is not None else handle.get_reference_length(region.contig)
    return sum(
        1 for read in handle.fetch(region.contig, region.start, end)
        if _counts_read(read, min_mapq)
    )


def count_overlaps(
    regions: Sequence[GenomicRegion],
    files: Union[AlignmentFileSet, Sequence[Union[str, Path]]],
    min_mapq: int = 0,
) -> np.ndarray:
    """
    Count reads overlapping each region in each file.

    Args:
        regions: Regions of interest
        files: An open AlignmentFileSet, or BAM paths (opened and closed here)
        min_mapq: Minimum mapping quality for a read to count

    Returns:
        int64 matrix of shape (len(regions), n_files)

    Raises:
        KeyError: A region's contig is absent from a file
    """
    if min_mapq < 0:
        raise ValueError(f"min_mapq must be >= 0, got {min_mapq}")
    if not isinstance(files, AlignmentFileSet):
        with AlignmentFileSet(files) as opened:
            return count_overlaps(regions, opened, min_mapq)

    logger.info(f"Counting reads in {len(regions)} regions across {len(files)} BAM files")
    counts = np.zeros((len(regions), len(files)), dtype=np.int64)
    for j, (path, handle) in enumerate(zip(files.paths, files)):
        for i, region in enumerate(regions):
            counts[i, j] = _count_region(handle, region, min_mapq)
        logger.debug(f"{path.name}: {int(counts[:, j].sum())} reads in regions")
    return counts


def summarize_overlaps(
    regions: Sequence[GenomicRegion],
    files: Union[AlignmentFileSet, Sequence[Union[str, Path]]],
    min_mapq: int = 0,
    descriptor: Optional[ExperimentDescriptor] = None,
) -> CoupledContainer:
    """
    Count overlaps and wrap them in a CoupledContainer.

    Feature metadata: region_id, contig, start, end (0-based half-open).
    Sample metadata: sample_id (file name without ``.bam``), path, genome.
    """
    if not isinstance(files, AlignmentFileSet):
        with AlignmentFileSet(files) as opened:
            return summarize_overlaps(regions, opened, min_mapq, descriptor)

    labels = [r.label for r in regions]
    if len(set(labels)) != len(labels):
        raise ValueError("region labels must be unique; give duplicated regions a name")
    names = files.names
    if len(set(names)) != len(names):
        raise ValueError(f"BAM file names must be unique, got {names}")

    counts = count_overlaps(regions, files, min_mapq)

    lengths = dict(zip(files.handles[0].references, files.handles[0].lengths))
    features = MetadataTable(
        {
            'region_id': labels,
            'contig': [r.contig for r in regions],
            'start': np.asarray([r.start for r in regions], dtype=np.int64),
            'end': np.asarray(
                [r.end if r.end is not None else lengths[r.contig] for r in regions],
                dtype=np.int64,
            ),
        },
        id_column='region_id',
    )
    samples = MetadataTable(
        {
            'sample_id': names,
            'path': [str(p) for p in files.paths],
            'genome': [files.genome] * len(names),
        },
        id_column='sample_id',
    )
    return CoupledContainer(
        assays={'counts': counts},
        sample_metadata=samples,
        feature_metadata=features,
        descriptor=descriptor,
    )
