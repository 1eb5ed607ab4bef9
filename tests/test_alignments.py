"""
Tests for BAM read counting (pysam-backed).

Uses the tiny BAM files from conftest: 50 bp reads at known positions on a
two-contig reference (chr1: 1000 bp, chr2: 500 bp).
"""

import numpy as np
import pytest

from expressionkit.core.exceptions import DimensionMismatchError
from expressionkit.io.alignments import (
    AlignmentFileSet,
    GenomicRegion,
    count_overlaps,
    parse_region,
    read_bed,
    summarize_overlaps,
)


@pytest.fixture
def regions():
    return [
        GenomicRegion('chr1', 0, 1000, name='chr1_all'),
        GenomicRegion('chr1', 180, 260),
        GenomicRegion('chr2', 0, 100),
    ]


class TestRegions:

    def test_parse_one_based_inclusive(self):
        region = parse_region("chr1:1,001-2,000")
        assert (region.contig, region.start, region.end) == ('chr1', 1000, 2000)
        assert region.width == 1000

    def test_parse_contig_only(self):
        region = parse_region("chrM")
        assert region.start == 0
        assert region.end is None
        assert region.label == 'chrM'

    @pytest.mark.parametrize("text", ["", "chr1:abc", "chr1:0-10", "chr1:10-"])
    def test_parse_invalid(self, text):
        with pytest.raises(ValueError):
            parse_region(text)

    def test_end_before_start(self):
        with pytest.raises(ValueError, match="precedes"):
            GenomicRegion('chr1', 100, 50)

    def test_label_defaults_to_coordinates(self):
        assert GenomicRegion('chr1', 180, 260).label == 'chr1:181-260'
        assert GenomicRegion('chr1', 180, 260, name='peak1').label == 'peak1'

    def test_read_bed(self, tmp_path):
        bed = tmp_path / "peaks.bed"
        bed.write_text(
            "track name=peaks\n"
            "# comment\n"
            "chr1\t0\t100\tgeneA\n"
            "chr2\t5\t50\n"
        )
        regions = read_bed(bed)
        assert [r.label for r in regions] == ['geneA', 'chr2:6-50']
        assert regions[1].start == 5

    def test_read_bed_too_few_columns(self, tmp_path):
        bed = tmp_path / "bad.bed"
        bed.write_text("chr1\t0\n")
        with pytest.raises(ValueError, match="3 columns"):
            read_bed(bed)


class TestAlignmentFileSet:

    def test_names_and_len(self, bam_pair):
        with AlignmentFileSet(bam_pair) as bams:
            assert bams.names == ['a', 'b']
            assert len(bams) == 2

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            AlignmentFileSet([tmp_path / "missing.bam"])

    def test_unindexed_file(self, make_bam):
        path = make_bam('plain', [('chr1', 10, 60, 0)], index=False)
        with pytest.raises(FileNotFoundError, match="index"):
            AlignmentFileSet([path])

    def test_index_on_open(self, make_bam):
        path = make_bam('plain', [('chr1', 10, 60, 0)], index=False)
        with AlignmentFileSet([path], index=True) as bams:
            assert bams.handles[0].has_index()

    def test_reference_table(self, bam_pair):
        with AlignmentFileSet(bam_pair, genome='hg19') as bams:
            table = bams.reference_table()
        assert list(table.ids) == ['chr1', 'chr2']
        assert table['length'].tolist() == [1000, 500]
        assert table['genome'].tolist() == ['hg19', 'hg19']

    def test_genome_reassignment_takes_effect(self, bam_pair):
        with AlignmentFileSet(bam_pair, genome='hg19') as bams:
            bams.genome = 'hg38'
            assert bams.reference_table()['genome'].tolist() == ['hg38', 'hg38']

    def test_references_disagree(self, bam_pair, tmp_path):
        import pysam
        other = tmp_path / "other.bam"
        header = {'HD': {'VN': '1.6', 'SO': 'coordinate'}, 'SQ': [{'LN': 999, 'SN': 'chr1'}]}
        with pysam.AlignmentFile(str(other), "wb", header=header):
            pass
        pysam.index(str(other))
        with AlignmentFileSet([bam_pair[0], other]) as bams:
            with pytest.raises(DimensionMismatchError):
                bams.reference_table()


class TestCounting:

    def test_counts(self, bam_pair, regions):
        counts = count_overlaps(regions, bam_pair)
        assert counts.dtype == np.int64
        np.testing.assert_array_equal(counts, [[3, 3], [1, 1], [1, 0]])

    def test_min_mapq(self, bam_pair, regions):
        counts = count_overlaps(regions, bam_pair, min_mapq=10)
        assert counts[0, 0] == 2
        assert counts[0, 1] == 3

    def test_negative_min_mapq(self, bam_pair, regions):
        with pytest.raises(ValueError):
            count_overlaps(regions, bam_pair, min_mapq=-1)

    def test_unknown_contig(self, bam_pair):
        with pytest.raises(KeyError, match="chrX"):
            count_overlaps([GenomicRegion('chrX', 0, 10)], bam_pair)

    def test_open_ended_region(self, bam_pair):
        counts = count_overlaps([parse_region("chr1:151")], bam_pair)
        # the read at 100 covers 100-149 and misses the region
        np.testing.assert_array_equal(counts, [[2, 3]])


class TestSummarizeOverlaps:

    def test_container_layout(self, bam_pair, regions, descriptor):
        with AlignmentFileSet(bam_pair, genome='hg19') as bams:
            se = summarize_overlaps(regions, bams, descriptor=descriptor)
        se.validate()
        assert se.shape == (3, 2)
        assert list(se.feature_ids) == ['chr1_all', 'chr1:181-260', 'chr2:1-100']
        assert list(se.sample_ids) == ['a', 'b']
        assert se.sample_metadata['genome'].tolist() == ['hg19', 'hg19']
        assert se.feature_metadata['end'].tolist() == [1000, 260, 100]
        assert se.descriptor is descriptor

    def test_open_ended_end_filled_from_reference(self, bam_pair):
        se = summarize_overlaps([parse_region("chr2")], bam_pair)
        assert se.feature_metadata['end'].tolist() == [500]

    def test_subset_keeps_regions_and_files_aligned(self, bam_pair, regions):
        se = summarize_overlaps(regions, bam_pair)
        sub = se.subset_samples(['b']).subset_features(lambda f: f['contig'] == 'chr1')
        np.testing.assert_array_equal(sub.assay(), [[3], [1]])
        assert sub.sample_metadata['path'].tolist()[0].endswith('b.bam')

    def test_duplicate_labels(self, bam_pair):
        twice = [GenomicRegion('chr1', 0, 10), GenomicRegion('chr1', 0, 10)]
        with pytest.raises(ValueError, match="unique"):
            summarize_overlaps(twice, bam_pair)
