"""
Pytest configuration and shared fixtures.

Provides small hand-built containers for exact assertions, a synthetic
RNA-seq-like container generator, and a factory for tiny indexed BAM files.
"""

import numpy as np
import pandas as pd
import pysam
import pytest

from expressionkit import CoupledContainer, MetadataTable
from expressionkit.core.descriptor import ExperimentDescriptor


def generate_synthetic_container(
    n_genes: int,
    n_samples: int,
    seed: int = 42,
) -> CoupledContainer:
    """
    Generate a count container with realistic metadata.

    - Negative-binomial counts (overdispersed, like RNA-seq)
    - Alternating ctrl/trt treatment, 4 cell lines
    - Gene annotation with symbol and biotype
    """
    rng = np.random.default_rng(seed)
    means = rng.lognormal(mean=4, sigma=2, size=(n_genes, 1))
    counts = rng.negative_binomial(n=5, p=5 / (5 + means), size=(n_genes, n_samples))

    sample_ids = [f"SRR{1039508 + i}" for i in range(n_samples)]
    samples = MetadataTable(
        {
            'Run': sample_ids,
            'dex': ['untrt' if i % 2 == 0 else 'trt' for i in range(n_samples)],
            'cell': [f"N{i % 4}" for i in range(n_samples)],
        },
        id_column='Run',
    )
    genes = MetadataTable(
        {
            'gene_id': [f"ENSG{i:011d}" for i in range(n_genes)],
            'symbol': [f"GENE{i}" for i in range(n_genes)],
            'biotype': ['protein_coding' if i % 3 else 'lncRNA' for i in range(n_genes)],
        },
        id_column='gene_id',
    )
    return CoupledContainer(counts, samples, genes)


@pytest.fixture
def counts_3x2():
    """3 features × 2 samples count matrix."""
    return np.array([[1, 2], [3, 4], [5, 6]])


@pytest.fixture
def sample_table():
    return MetadataTable(
        {'sample_id': ['s1', 's2'], 'group': ['ctrl', 'trt']},
        id_column='sample_id',
    )


@pytest.fixture
def feature_table():
    return MetadataTable(
        {'gene_id': ['g1', 'g2', 'g3'], 'symbol': ['TP53', 'MYC', 'EGFR']},
        id_column='gene_id',
    )


@pytest.fixture
def small_container(counts_3x2, sample_table, feature_table):
    """The 3×2 example container (features g1..g3, samples s1, s2)."""
    return CoupledContainer(counts_3x2, sample_table, feature_table)


@pytest.fixture
def airway_container():
    """Synthetic 60 genes × 8 samples container."""
    return generate_synthetic_container(n_genes=60, n_samples=8)


@pytest.fixture
def descriptor():
    return ExperimentDescriptor(
        title="RNA-Seq transcriptome profiling of airway smooth muscle",
        pubmed_ids=["24926665"],
        lab="Himes lab",
        abstract="Dexamethasone-treated airway smooth muscle cells.",
    )


# ---------------------------------------------------------------------------
# BAM files
# ---------------------------------------------------------------------------

BAM_HEADER = {
    'HD': {'VN': '1.6', 'SO': 'coordinate'},
    'SQ': [{'LN': 1000, 'SN': 'chr1'}, {'LN': 500, 'SN': 'chr2'}],
}

DUPLICATE = 0x400


@pytest.fixture
def make_bam(tmp_path):
    """
    Factory: make_bam(name, reads, index=True) -> Path.

    ``reads`` is a list of (contig, start, mapq, flag) tuples in coordinate
    order; every read is a 50M alignment.
    """
    def _make(name, reads, index=True):
        path = tmp_path / f"{name}.bam"
        contigs = [sq['SN'] for sq in BAM_HEADER['SQ']]
        with pysam.AlignmentFile(str(path), "wb", header=BAM_HEADER) as out:
            for n, (contig, start, mapq, flag) in enumerate(reads):
                read = pysam.AlignedSegment()
                read.query_name = f"{name}_read_{n:03d}"
                read.query_sequence = "A" * 50
                read.flag = flag
                read.reference_id = contigs.index(contig)
                read.reference_start = start
                read.mapping_quality = mapq
                read.cigar = ((0, 50),)
                read.query_qualities = pysam.qualitystring_to_array("I" * 50)
                out.write(read)
        if index:
            pysam.index(str(path))
        return path

    return _make


@pytest.fixture
def bam_pair(make_bam):
    """
    Two indexed BAMs with known read placement.

    a.bam: chr1 @100, @200, @300 (duplicate), @500 (MAPQ 5); chr2 @10
    b.bam: chr1 @110, @120, @210
    """
    a = make_bam('a', [
        ('chr1', 100, 60, 0),
        ('chr1', 200, 60, 0),
        ('chr1', 300, 60, DUPLICATE),
        ('chr1', 500, 5, 0),
        ('chr2', 10, 60, 0),
    ])
    b = make_bam('b', [
        ('chr1', 110, 60, 0),
        ('chr1', 120, 60, 0),
        ('chr1', 210, 60, 0),
    ])
    return [a, b]


@pytest.fixture
def write_csvs(tmp_path):
    """Write an assay CSV plus sample/feature sheets; returns their paths."""
    def _write(container: CoupledContainer, shuffle_samples: bool = False):
        assay = tmp_path / "counts.csv"
        container.to_frame().to_csv(assay)
        samples = container.sample_metadata.to_frame()
        if shuffle_samples:
            samples = samples.iloc[::-1]
        samples_path = tmp_path / "samples.csv"
        samples.to_csv(samples_path, index=False)
        features_path = tmp_path / "features.csv"
        container.feature_metadata.to_frame().to_csv(features_path, index=False)
        return assay, samples_path, features_path

    return _write
