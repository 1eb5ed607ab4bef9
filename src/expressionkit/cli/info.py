"""
expressionkit info - Load, validate and summarize a container.

Usage:
    expressionkit info --input results/genes
    expressionkit info --assay counts.csv --samples samples.csv --sample-id-column Run
"""

import argparse
import logging
import sys
from pathlib import Path

from expressionkit.cli import add_common_arguments, setup_logging

logger = logging.getLogger(__name__)


def register_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the info subcommand."""
    parser = subparsers.add_parser(
        "info",
        help="Load, validate and summarize a container",
        description=(
            "Load a saved container (--input) or assemble one from CSV files "
            "(--assay with optional --samples/--features), check that it is "
            "consistent, and print a summary."
        )
    )
    parser.add_argument("--input", "-i", type=Path, default=None,
                        help="Prefix of a container written by expressionkit")
    parser.add_argument("--assay", type=Path, default=None,
                        help="Assay CSV (features x samples)")
    parser.add_argument("--samples", type=Path, default=None,
                        help="Sample metadata CSV")
    parser.add_argument("--features", type=Path, default=None,
                        help="Feature metadata CSV")
    parser.add_argument("--sample-id-column", default=None,
                        help="Identifier column in the sample CSV (default: first column)")
    parser.add_argument("--feature-id-column", default=None,
                        help="Identifier column in the feature CSV (default: first column)")
    add_common_arguments(parser)
    parser.set_defaults(func=run_info)


def run_info(args: argparse.Namespace) -> int:
    """Execute the info command."""
    from expressionkit.core.exceptions import ExpressionKitError
    from expressionkit.io import load_container, read_container

    setup_logging(args.verbose)

    if (args.input is None) == (args.assay is None):
        print("Error: give exactly one of --input or --assay", file=sys.stderr)
        return 2

    try:
        if args.input is not None:
            container = read_container(args.input)
        else:
            container = load_container(
                args.assay,
                sample_metadata_path=args.samples,
                feature_metadata_path=args.features,
                sample_id_column=args.sample_id_column,
                feature_id_column=args.feature_id_column,
            )
        container.validate()
    except (ExpressionKitError, FileNotFoundError, KeyError, ValueError) as e:
        logger.error(f"info failed: {e}")
        return 1

    print(container)
    if container.descriptor is not None:
        print(container.descriptor.summary())
    print("\nValidation: OK")
    return 0
