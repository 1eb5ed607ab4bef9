"""
expressionkit subset - Subset, filter or log-transform a saved container.

Usage:
    expressionkit subset --input results/genes --where dex=trt --output results/trt
    expressionkit subset --input results/genes --min-total 10 --log-base 2 --output results/filtered
"""

import argparse
import logging
from pathlib import Path

from expressionkit.cli import add_common_arguments, setup_logging
from expressionkit.cli._validators import _key_value, _positive_float

logger = logging.getLogger(__name__)


def register_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the subset subcommand."""
    parser = subparsers.add_parser(
        "subset",
        help="Subset, filter or log-transform a saved container",
        description=(
            "Select features/samples by identifier or by sample metadata value, "
            "drop low-count features, add a log-scaled assay, and write the result."
        )
    )
    parser.add_argument("--input", "-i", type=Path, required=True,
                        help="Prefix of a container written by expressionkit")
    parser.add_argument("--output", "-o", type=Path, required=True,
                        help="Output prefix")
    parser.add_argument("--features", nargs="+", default=None,
                        help="Feature identifiers to keep")
    parser.add_argument("--samples", nargs="+", default=None,
                        help="Sample identifiers to keep")
    parser.add_argument("--where", type=_key_value, action="append", default=[],
                        metavar="COLUMN=VALUE",
                        help="Keep samples whose metadata COLUMN equals VALUE (repeatable)")
    parser.add_argument("--min-total", type=float, default=None,
                        help="Drop features with fewer total counts")
    parser.add_argument("--log-base", type=_positive_float, default=None,
                        help="Add a 'logcounts' assay: log_base(counts + 1)")
    add_common_arguments(parser)
    parser.set_defaults(func=run_subset)


def run_subset(args: argparse.Namespace) -> int:
    """Execute the subset command."""
    from expressionkit.core.exceptions import ExpressionKitError
    from expressionkit.core.transform import FilterLowCounts, LogTransform
    from expressionkit.io import read_container, write_container

    setup_logging(args.verbose)

    try:
        container = read_container(args.input)
        logger.info(f"Loaded {container.n_features} features × {container.n_samples} samples")

        if args.features:
            container = container.subset_features(args.features)
        if args.samples:
            container = container.subset_samples(args.samples)

        for column, value in args.where:
            # CSV round-trips numbers as numbers; compare as text
            values = container.sample_metadata.get_column(column).astype(str).to_numpy()
            container = container.subset_samples(values == value)
            logger.info(f"{column}={value}: {container.n_samples} samples remain")
        if args.where and container.n_samples == 0:
            logger.warning("No samples matched the --where filters")

        if args.min_total is not None:
            container = FilterLowCounts(min_total=args.min_total).apply(container)
        if args.log_base is not None:
            container = LogTransform(base=args.log_base).apply(container)

        write_container(container, args.output)
    except (ExpressionKitError, FileNotFoundError, KeyError, IndexError, ValueError) as e:
        logger.error(f"subset failed: {e}")
        return 1

    print(container)
    print(f"\nWrote {args.output}.*")
    return 0
