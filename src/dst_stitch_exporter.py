#!/usr/bin/env python3
"""
Export writers for decoded DST designs.

Every writer takes the decoded design (a list of :class:`EmbOp`), the output
path and a raster size, and writes one file. Raster output is drawn with
Pillow; DXF output is plain text.
"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Callable, Dict, List, Sequence, Tuple

from PIL import Image, ImageDraw

import dst_stitch_core as dsc

logger = logging.getLogger(__name__)

Point = dsc.Point
Size = Tuple[int, int]
Viewport = Tuple[float, float, float]

DEFAULT_SIZE: Size = (800, 800)
GIF_FRAME_COUNT = 60
GIF_FRAME_MS = 60


class ExportProfile:
    """Holds metadata about every supported export format."""

    def __init__(
        self,
        title: str,
        extension: str,
        description: str,
        writer: Callable[[Sequence[dsc.EmbOp], Path, Size], None],
    ) -> None:
        self.title = title
        self.extension = extension
        self.description = description
        self.writer = writer


def fit_viewport(bounds: dsc.Rectangle2, width: int, height: int, margin: float = 0.05) -> Viewport:
    """Return (scale, offset_x, offset_y) centering ``bounds`` in the raster.

    Stitch Y grows upward, so ``offset_y`` is the canvas row of y == 0 and
    rows are computed as ``offset_y - y * scale``.
    """
    span_x = max(bounds.max_x - bounds.min_x, 1e-3)
    span_y = max(bounds.max_y - bounds.min_y, 1e-3)
    scale_x = width * (1.0 - margin) / span_x
    scale_y = height * (1.0 - margin) / span_y
    scale = min(scale_x, scale_y)
    offset_x = (width - span_x * scale) / 2.0 - bounds.min_x * scale
    offset_y = (height + span_y * scale) / 2.0 + bounds.min_y * scale
    return scale, offset_x, offset_y


def _to_canvas(point: Point, viewport: Viewport) -> Tuple[int, int]:
    scale, offset_x, offset_y = viewport
    return (
        int(round(point[0] * scale + offset_x)),
        int(round(offset_y - point[1] * scale)),
    )


def _raster_paths(
    design: Sequence[dsc.EmbOp], size: Size
) -> List[Tuple[Tuple[int, int, int], List[Tuple[int, int]]]]:
    """Project every block onto the raster, keeping its op color."""
    if not any(op.stitch_count for op in design):
        raise ValueError("Design contains no stitches.")
    viewport = fit_viewport(dsc.design_bounds(design), size[0], size[1])
    paths = []
    for op in design:
        rgb = dsc.color_to_rgb8(op.color)
        for block in op.blocks:
            if not block:
                continue
            paths.append((rgb, [_to_canvas(pt, viewport) for pt in block]))
    return paths


def _draw_path(draw: ImageDraw.ImageDraw, rgb: Tuple[int, int, int], pts: List[Tuple[int, int]]) -> None:
    if len(pts) >= 2:
        draw.line(pts, fill=rgb, width=2)
    elif pts:
        draw.point(pts, fill=rgb)


# Export writers -------------------------------------------------------------
def _write_dxf(design: Sequence[dsc.EmbOp], outfile: Path, size: Size = DEFAULT_SIZE) -> None:
    """Write one polyline per block; ``size`` is unused for vector output."""
    entities: List[str] = []
    for op_idx, op in enumerate(design):
        r, g, b = dsc.color_to_rgb8(op.color)
        true_color = (r << 16) | (g << 8) | b
        layer = f"COLOR_{op_idx}"
        for pts in op.blocks:
            if len(pts) < 2:
                continue
            entities.extend(
                [
                    "0",
                    "LWPOLYLINE",
                    "8",
                    layer,
                    "420",
                    str(true_color),
                    "90",
                    str(len(pts)),
                    "70",
                    "0",
                ]
            )
            for x, y in pts:
                entities.extend(["10", f"{x:.4f}", "20", f"{y:.4f}"])
    content = [
        "0",
        "SECTION",
        "2",
        "HEADER",
        "0",
        "ENDSEC",
        "0",
        "SECTION",
        "2",
        "ENTITIES",
        *entities,
        "0",
        "ENDSEC",
        "0",
        "EOF",
    ]
    Path(outfile).parent.mkdir(parents=True, exist_ok=True)
    Path(outfile).write_text("\n".join(content), encoding="ascii")


def _write_png(design: Sequence[dsc.EmbOp], outfile: Path, size: Size = DEFAULT_SIZE) -> None:
    paths = _raster_paths(design, size)
    img = Image.new("RGB", size, dsc.color_to_rgb8(dsc.BACKGROUND_COLOR))
    draw = ImageDraw.Draw(img)
    for rgb, pts in paths:
        _draw_path(draw, rgb, pts)
    Path(outfile).parent.mkdir(parents=True, exist_ok=True)
    img.save(outfile, format="PNG")


def _write_gif(design: Sequence[dsc.EmbOp], outfile: Path, size: Size = DEFAULT_SIZE) -> None:
    """Animated stitch-out: frame k shows the first k/N of all stitches."""
    paths = _raster_paths(design, size)
    background = dsc.color_to_rgb8(dsc.BACKGROUND_COLOR)
    total = sum(len(pts) for _rgb, pts in paths)
    frame_count = min(GIF_FRAME_COUNT, total)

    frames: List[Image.Image] = []
    for idx in range(frame_count):
        remaining = int(math.ceil(total * (idx + 1) / frame_count))
        img = Image.new("RGB", size, background)
        draw = ImageDraw.Draw(img)
        needle = None
        for rgb, pts in paths:
            if remaining <= 0:
                break
            visible = pts[:remaining]
            remaining -= len(visible)
            _draw_path(draw, rgb, visible)
            needle = visible[-1]

        if needle is not None:
            r = 4
            draw.ellipse([needle[0] - r, needle[1] - r, needle[0] + r, needle[1] + r], fill="#e53935")
        frames.append(img)

    Path(outfile).parent.mkdir(parents=True, exist_ok=True)
    frames[0].save(
        outfile,
        save_all=True,
        append_images=frames[1:],
        duration=GIF_FRAME_MS,
        loop=0,
        disposal=2,
    )


EXPORT_PROFILES: Dict[str, ExportProfile] = {
    "DXF": ExportProfile(
        title="AutoCAD DXF (polyline)",
        extension="dxf",
        description="One polyline per stitch block, one layer per color",
        writer=_write_dxf,
    ),
    "PNG": ExportProfile(
        title="PNG image",
        extension="png",
        description="Static render of the design",
        writer=_write_png,
    ),
    "GIF": ExportProfile(
        title="Animated GIF",
        extension="gif",
        description="Stitch-out animation exported as GIF",
        writer=_write_gif,
    ),
}


def format_for_path(path: Path) -> str:
    """Return the EXPORT_PROFILES key whose extension matches ``path``."""
    suffix = Path(path).suffix.lower().lstrip(".")
    for key, profile in EXPORT_PROFILES.items():
        if profile.extension == suffix:
            return key
    raise KeyError(suffix)


def export_design(design: Sequence[dsc.EmbOp], outfile: Path, profile: ExportProfile, size: Size = DEFAULT_SIZE) -> None:
    logger.info("Writing %s to %s", profile.title, outfile)
    profile.writer(design, Path(outfile), size)
