"""
expressionkit count - Count reads overlapping genomic regions in BAM files.

Produces a regions × BAM files count container and writes it to disk,
optionally annotated with the study's PubMed record.

Usage:
    expressionkit count --bam ctrl.bam trt.bam --regions genes.bed --output results/genes
    expressionkit count --bam *.bam --regions chr4:1,000-20,000 --pmid 24926665
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List

from expressionkit.cli import add_common_arguments, setup_logging
from expressionkit.cli._validators import _non_negative_int

logger = logging.getLogger(__name__)


def register_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the count subcommand."""
    parser = subparsers.add_parser(
        "count",
        help="Count reads overlapping regions in BAM files",
        description=(
            "Count reads overlapping each region in each indexed BAM file and "
            "write the result as a container (counts + region/sample metadata)."
        )
    )
    parser.add_argument("--bam", "-b", type=Path, nargs="+", default=[],
                        help="Indexed BAM files (one sample each)")
    parser.add_argument("--regions", "-r", nargs="+", default=[],
                        help="BED files and/or regions like chr1:1,000-2,000")
    parser.add_argument("--output", "-o", type=Path, default=Path("results/counts"),
                        help="Output prefix (default: results/counts)")
    parser.add_argument("--min-mapq", type=_non_negative_int, default=0,
                        help="Minimum mapping quality (default: 0)")
    parser.add_argument("--genome", default=None,
                        help="Genome build label recorded with each sample (e.g., hg19)")
    parser.add_argument("--index", action="store_true",
                        help="Build missing BAM indexes instead of failing")
    parser.add_argument("--pmid", default=None,
                        help="PubMed id to attach as the experiment descriptor")
    parser.add_argument("--email", default=None,
                        help="Contact e-mail sent with NCBI requests")
    add_common_arguments(parser)
    parser.set_defaults(func=run_count)


def resolve_regions(entries: List[str]) -> list:
    """Expand BED paths and region strings into GenomicRegions."""
    from expressionkit.io.alignments import parse_region, read_bed

    regions = []
    for entry in entries:
        path = Path(entry)
        if path.suffix.lower() == '.bed' or path.is_file():
            regions.extend(read_bed(path))
        else:
            regions.append(parse_region(entry))
    return regions


def run_count(args: argparse.Namespace) -> int:
    """Execute the count command."""
    from expressionkit.annotation import CachedDescriptorProvider, PubMedDescriptorProvider
    from expressionkit.core.exceptions import ExpressionKitError
    from expressionkit.io import AlignmentFileSet, summarize_overlaps, write_container

    setup_logging(args.verbose)

    if not args.bam:
        print("Error: no BAM files given (--bam or counting.bam in config)", file=sys.stderr)
        return 2
    if not args.regions:
        print("Error: no regions given (--regions or counting.regions in config)", file=sys.stderr)
        return 2

    try:
        regions = resolve_regions(args.regions)
        with AlignmentFileSet(args.bam, genome=args.genome, index=args.index) as bams:
            container = summarize_overlaps(regions, bams, min_mapq=args.min_mapq)

        if args.pmid:
            provider = CachedDescriptorProvider(PubMedDescriptorProvider(email=args.email))
            container.attach_descriptor(provider.get_descriptor(args.pmid))

        write_container(container, args.output)
    except (ExpressionKitError, FileNotFoundError, KeyError, ValueError, RuntimeError) as e:
        logger.error(f"count failed: {e}")
        return 1

    print(container)
    print(f"\nWrote {args.output}.*")
    return 0
