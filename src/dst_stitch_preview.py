#!/usr/bin/env python3
"""
Command line front end: decode a DST file, report it and optionally export it.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional, Sequence

import dst_stitch_core as dsc
import dst_stitch_exporter as dse

logger = logging.getLogger("dst_stitch_preview")

LOG_LEVEL_ENV = "DST_STITCH_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def load_design(path: Path, palette: Sequence[dsc.Color] = dsc.DEFAULT_PALETTE) -> List[dsc.EmbOp]:
    """Read ``path`` and decode it; ``OSError`` propagates to the caller."""
    buf = Path(path).read_bytes()
    logger.debug("Read %d bytes from %s", len(buf), path)
    return dsc.decode_dst(buf, palette)


def configure_logging(verbose: bool) -> None:
    if verbose:
        level = logging.DEBUG
    else:
        level = getattr(logging, os.environ.get(LOG_LEVEL_ENV, "INFO").upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="DST Stitch Preview & Export")
    parser.add_argument("input", type=Path, help="Path to a .dst embroidery file.")
    parser.add_argument("-o", "--output", type=Path, help="Export destination (.dxf, .png or .gif).")
    parser.add_argument(
        "-f",
        "--format",
        choices=sorted(dse.EXPORT_PROFILES),
        help="Export format; inferred from the output extension when omitted.",
    )
    parser.add_argument("--width", type=int, default=dse.DEFAULT_SIZE[0], help="Raster width in pixels.")
    parser.add_argument("--height", type=int, default=dse.DEFAULT_SIZE[1], help="Raster height in pixels.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    args = parser.parse_args(argv)

    if args.width <= 0 or args.height <= 0:
        parser.error("--width and --height must be positive.")
    if args.format is not None and args.output is None:
        parser.error("--format requires --output.")
    if args.output is not None and args.format is None:
        try:
            args.format = dse.format_for_path(args.output)
        except KeyError:
            parser.error(f"Cannot infer export format from {args.output.name}; use --format.")
    return args


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose)

    try:
        design = load_design(args.input)
    except OSError as exc:
        logger.error("Unable to read %s: %s", args.input, exc)
        return 1
    if not design:
        logger.error("No stitches decoded from %s.", args.input)
        return 1

    stats = dsc.design_stats(design)
    bounds = dsc.design_bounds(design, margin=0.0)
    width_mm, height_mm = bounds.size
    logger.info(
        "%s: %d color(s), %d block(s), %d stitch(es), %.1f mm stitched, %.1f x %.1f mm",
        args.input.name,
        stats.op_count,
        stats.block_count,
        stats.stitch_count,
        stats.length_mm,
        width_mm,
        height_mm,
    )

    if args.output is not None:
        profile = dse.EXPORT_PROFILES[args.format]
        try:
            dse.export_design(design, args.output, profile, size=(args.width, args.height))
        except OSError as exc:
            logger.error("Unable to write %s: %s", args.output, exc)
            return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
