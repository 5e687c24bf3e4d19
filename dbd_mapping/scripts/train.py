#!/usr/bin/env python3
"""Train the DBD model and map it over the prediction domain."""

import argparse
from pathlib import Path
import sys
import time

from dbd_mapping.config.settings import Settings
from dbd_mapping.pipeline import run_pipeline
from dbd_mapping.utils.helpers import format_duration
from dbd_mapping.utils.logger import setup_logger


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Spatial quantile forest mapping of sediment dry bulk density"
    )

    parser.add_argument(
        "--config",
        type=Path,
        required=True,
        help="Path to the YAML run configuration",
    )

    parser.add_argument(
        "--output-dir",
        type=Path,
        help="Output directory (overrides paths.output_dir)",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: DBD_LOG_LEVEL or INFO)",
    )

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Run the full pipeline; return the process exit code."""
    args = parse_arguments(argv)
    logger = setup_logger("train", level=args.log_level)

    try:
        settings = Settings.from_yaml(args.config)
        logger = setup_logger("train", level=args.log_level, log_file=settings.paths.log_file)
        logger.info(f"Loaded configuration from {args.config}")

        start = time.time()
        result = run_pipeline(settings, output_dir=args.output_dir)
        logger.info(f"Run finished in {format_duration(time.time() - start)}")

        print(result.report.to_text())
        return 0

    except (ValueError, KeyError, OSError) as e:
        logger.error(f"Training failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
