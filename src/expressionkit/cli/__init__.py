"""
expressionkit CLI - Command-line interface for coupled assay containers.

Commands:
    expressionkit info     - Load, validate and summarize a container
    expressionkit count    - Count reads in regions across BAM files
    expressionkit subset   - Subset / filter / log-transform a saved container
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    """Options every subcommand accepts."""
    parser.add_argument("--config", "-c", type=Path, default=None,
                        help="YAML/JSON config file (explicit CLI flags take priority)")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Debug-level logging")


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )


def main(args: Optional[List[str]] = None) -> int:
    """Main CLI dispatcher for expressionkit."""
    parser = argparse.ArgumentParser(
        prog="expressionkit",
        description="Organize expression data with its sample and feature metadata",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  info      Load, validate and summarize a container
  count     Count reads overlapping regions in BAM files
  subset    Subset, filter or log-transform a saved container

Examples:
  expressionkit info --assay counts.csv --samples samples.csv --sample-id-column Run
  expressionkit count --bam ctrl.bam trt.bam --regions genes.bed --output results/genes
  expressionkit subset --input results/genes --where group=trt --output results/trt
        """
    )

    parser.add_argument(
        "--version", "-V",
        action="version",
        version="%(prog)s 0.1.0"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    from expressionkit.cli import count, info, subset
    info.register_parser(subparsers)
    count.register_parser(subparsers)
    subset.register_parser(subparsers)

    raw_args = list(args) if args is not None else sys.argv[1:]
    parsed_args = parser.parse_args(raw_args)

    if parsed_args.command is None:
        parser.print_help()
        return 0

    if parsed_args.config is not None:
        from expressionkit.cli.config import load_config, merge_config_with_args, validate_config
        try:
            config = load_config(parsed_args.config)
            validate_config(config)
        except (FileNotFoundError, ValueError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 2
        parsed_args = merge_config_with_args(config, parsed_args, raw_args)

    return parsed_args.func(parsed_args)


if __name__ == "__main__":
    sys.exit(main())
