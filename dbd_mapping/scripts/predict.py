#!/usr/bin/env python3
"""Re-predict a serialized DBD model on a predictor stack."""

import argparse
from pathlib import Path
import sys

from dbd_mapping.models.io import load_selected_model
from dbd_mapping.pipeline import predict_products, write_products
from dbd_mapping.readers.domain import load_domain
from dbd_mapping.readers.raster_stack import PredictorStack
from dbd_mapping.utils.logger import setup_logger


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Predict DBD quantiles with a saved model")

    parser.add_argument("--model", type=Path, required=True, help="Saved .joblib model")
    parser.add_argument("--stack", type=Path, required=True, help="Multi-band predictor raster")
    parser.add_argument(
        "--band-names",
        nargs="+",
        help="Band names when the raster has no band descriptions",
    )
    parser.add_argument("--domain", type=Path, help="Optional polygon layer to mask the stack")
    parser.add_argument(
        "--quantiles",
        type=float,
        nargs="+",
        default=[0.05, 0.5, 0.95],
        help="Quantile levels to predict (must include 0.5)",
    )
    parser.add_argument("--batch-size", type=int, default=50_000, help="Pixels per batch")
    parser.add_argument("--output-dir", type=Path, required=True, help="Output directory")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level",
    )

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Predict and write rasters; return the process exit code."""
    args = parse_arguments(argv)
    logger = setup_logger("predict", level=args.log_level)

    try:
        if 0.5 not in args.quantiles:
            raise ValueError(f"Quantiles {args.quantiles} must include 0.5")
        if not all(0 <= q <= 1 for q in args.quantiles):
            raise ValueError(f"Quantiles {args.quantiles} must lie in [0, 1]")

        model = load_selected_model(args.model)
        stack = PredictorStack.from_file(args.stack, band_names=args.band_names)
        if args.domain is not None:
            stack = stack.mask(load_domain(args.domain, crs=stack.crs))

        products = predict_products(
            model, stack.subset(model.features), args.quantiles, args.batch_size
        )
        outputs = write_products(products, stack, args.output_dir)
        logger.info(f"Wrote {len(outputs)} rasters to {args.output_dir}")
        return 0

    except (ValueError, KeyError, OSError) as e:
        logger.error(f"Prediction failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
