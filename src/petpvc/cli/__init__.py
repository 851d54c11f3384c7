"""Command-line interface configuration and utilities."""

from petpvc.cli.config import (
    CorrectionConfig,
    configure_logging,
    parse_common_args,
)

__all__ = [
    "CorrectionConfig",
    "configure_logging",
    "parse_common_args",
]
