"""
Configuration file support for the expressionkit CLI.

Supports YAML and JSON config files with CLI argument override.

Example ``count.yaml``::

    output: results/airway
    genome: hg19
    counting:
      bam: [bams/SRR1039508.bam, bams/SRR1039509.bam]
      regions: [regions.bed]
      min_mapq: 10
    descriptor:
      pmid: "24926665"
      email: analyst@example.org
"""

import json
from argparse import Namespace
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


@dataclass
class CountingConfig:
    """Read counting configuration."""
    bam: List[Path] = field(default_factory=list)
    regions: List[str] = field(default_factory=list)
    min_mapq: int = 0
    index: bool = False


@dataclass
class DescriptorConfig:
    """PubMed descriptor lookup configuration."""
    pmid: Optional[str] = None
    email: Optional[str] = None


@dataclass
class ConfigSchema:
    """
    Complete configuration schema for the expressionkit commands.

    Mirrors the CLI argument structure for consistency.
    """
    input: Optional[Path] = None
    output: Optional[Path] = None
    genome: Optional[str] = None
    counting: CountingConfig = field(default_factory=CountingConfig)
    descriptor: DescriptorConfig = field(default_factory=DescriptorConfig)


def load_config(config_path: Path) -> Dict[str, Any]:
    """
    Load configuration from YAML or JSON file.

    Parameters:
        config_path: Path to config file (.yaml, .yml, or .json)

    Returns:
        Dictionary with configuration values

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If file format is unsupported or invalid
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    suffix = config_path.suffix.lower()
    if suffix not in ('.yaml', '.yml', '.json'):
        raise ValueError(
            f"Unsupported config format: {suffix}. Use .yaml, .yml, or .json"
        )

    try:
        with open(config_path, 'r') as f:
            if suffix in ('.yaml', '.yml'):
                config = yaml.safe_load(f)
            else:
                config = json.load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in config file: {e}") from e
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in config file: {e}") from e

    if config is None:
        return {}

    if not isinstance(config, dict):
        raise ValueError("Config file must contain a dictionary/mapping at top level")

    return config


def validate_config(config: Dict[str, Any]) -> None:
    """
    Validate configuration values.

    Raises:
        ValueError: If configuration is invalid
    """
    counting = config.get('counting') or {}
    if not isinstance(counting, dict):
        raise ValueError("'counting' section must be a mapping")

    if 'min_mapq' in counting:
        min_mapq = counting['min_mapq']
        if isinstance(min_mapq, bool) or not isinstance(min_mapq, int) or min_mapq < 0:
            raise ValueError(f"counting.min_mapq must be a non-negative integer, got: {min_mapq}")

    for key in ('bam', 'regions'):
        if key in counting and not isinstance(counting[key], (list, str)):
            raise ValueError(f"counting.{key} must be a list or a string")

    descriptor = config.get('descriptor') or {}
    if not isinstance(descriptor, dict):
        raise ValueError("'descriptor' section must be a mapping")

    if 'log_base' in config:
        base = config['log_base']
        if not isinstance(base, (int, float)) or base <= 0 or base == 1:
            raise ValueError(f"log_base must be a positive number other than 1, got: {base}")


def _explicit_args(cli_args: Optional[List[str]]) -> set:
    """Names of options the user typed on the command line."""
    short_to_long = {'i': 'input', 'o': 'output', 'c': 'config', 'v': 'verbose'}
    explicit = set()
    for arg in cli_args or []:
        if arg.startswith('--'):
            explicit.add(arg[2:].split('=', 1)[0].replace('-', '_'))
        elif arg.startswith('-') and len(arg) == 2 and arg[1] in short_to_long:
            explicit.add(short_to_long[arg[1]])
    return explicit


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else [value]


def merge_config_with_args(
    config: Dict[str, Any],
    args: Namespace,
    cli_args: Optional[List[str]] = None,
) -> Namespace:
    """
    Merge config file values with CLI arguments.

    Priority (highest to lowest):
    1. Explicitly provided CLI arguments
    2. Config file values
    3. CLI argument defaults

    Only attributes that exist on ``args`` are touched, so one config file
    can serve several subcommands.

    Parameters:
        config: Configuration dictionary from load_config()
        args: Parsed CLI arguments (argparse.Namespace)
        cli_args: Raw CLI arguments list (for detecting explicit values)
    """
    explicit = _explicit_args(cli_args)
    merged = Namespace(**vars(args))

    def _merge(arg_name: str, value: Any) -> None:
        if not hasattr(merged, arg_name) or arg_name in explicit or value is None:
            return
        setattr(merged, arg_name, value)

    for key in ('input', 'output'):
        if config.get(key) is not None:
            _merge(key, Path(config[key]))
    _merge('genome', config.get('genome'))

    counting = config.get('counting') or {}
    if 'bam' in counting:
        _merge('bam', [Path(p) for p in _as_list(counting['bam'])])
    if 'regions' in counting:
        _merge('regions', [str(r) for r in _as_list(counting['regions'])])
    _merge('min_mapq', counting.get('min_mapq'))
    _merge('index', counting.get('index'))

    descriptor = config.get('descriptor') or {}
    if descriptor.get('pmid') is not None:
        _merge('pmid', str(descriptor['pmid']))
    _merge('email', descriptor.get('email'))

    _merge('log_base', config.get('log_base'))
    _merge('min_total', config.get('min_total'))

    return merged
