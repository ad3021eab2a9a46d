#!/usr/bin/env python3
"""
Core stitch model + DST decoder for the DST Stitch Preview & Export tools.

A Tajima DST file is a 512 byte header followed by 3 byte stitch records.
Each record carries a relative move encoded with ternary weights (1, 3, 9
per byte, so up to +/-121 units per axis) and two control bits in the last
byte: ``jump`` (needle up move) and ``stop`` (color change).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

logger = logging.getLogger(__name__)

Point = Tuple[float, float]
Color = Tuple[float, ...]
Block = List[Point]

HEADER_SIZE = 512
RECORD_SIZE = 3
UNIT_SCALE = 0.1  # one stitch unit is 0.1 mm
TRIM_JUMP_COUNT = 5

_CONTROL_MASK = 0x3C
_JUMP_BIT = 0x80
_STOP_BIT = 0x40

# (mask, dx, dy) for a single byte at weight 1.
_MOVE_BITS: Tuple[Tuple[int, int, int], ...] = (
    (0x01, 1, 0),
    (0x02, -1, 0),
    (0x04, 9, 0),
    (0x08, -9, 0),
    (0x80, 0, 1),
    (0x40, 0, -1),
    (0x20, 0, 9),
    (0x10, 0, -9),
)


@dataclass(frozen=True)
class DSTStitch:
    """Relative move and control flags decoded from one record."""

    dx: int
    dy: int
    jump: bool = False
    stop: bool = False


@dataclass
class EmbOp:
    """All blocks stitched with one thread color, in stitching order."""

    color: Color
    blocks: List[Block] = field(default_factory=list)

    @property
    def stitch_count(self) -> int:
        return sum(len(block) for block in self.blocks)


def read_dst_byte(value: int) -> Tuple[int, int]:
    """Return the (dx, dy) contribution of a single record byte at weight 1."""
    dx = 0
    dy = 0
    for mask, step_x, step_y in _MOVE_BITS:
        if value & mask:
            dx += step_x
            dy += step_y
    return dx, dy


def parse_stitch_record(record: Sequence[int]) -> DSTStitch:
    """Decode a 3 byte DST record into a :class:`DSTStitch`."""
    if len(record) != RECORD_SIZE:
        raise ValueError(f"DST records are {RECORD_SIZE} bytes, got {len(record)}.")
    b0, b1, b2 = record[0], record[1], record[2]
    dx = 0
    dy = 0
    for value, weight in ((b0, 1), (b1, 3), (b2 & _CONTROL_MASK, 9)):
        step_x, step_y = read_dst_byte(value)
        dx += step_x * weight
        dy += step_y * weight
    return DSTStitch(
        dx=dx,
        dy=dy,
        jump=bool(b2 & _JUMP_BIT),
        stop=bool(b2 & _STOP_BIT),
    )


def decode_dst(buf: bytes, colors: Sequence[Color]) -> List[EmbOp]:
    """Decode a DST buffer into color operations.

    Blocks are closed by a run of ``TRIM_JUMP_COUNT`` consecutive jumps or by
    a stop code. A stop emits the current op (when it holds any block) and
    moves on to the next palette color, wrapping around. Stitches left open
    after the last stop code are dropped.
    """
    if len(buf) < HEADER_SIZE:
        logger.debug("Buffer of %d bytes is shorter than the DST header.", len(buf))
        return []
    if not colors:
        logger.debug("Empty palette; nothing to decode.")
        return []

    color_idx = 0
    pos_x = 0
    pos_y = 0
    ops: List[EmbOp] = []
    current_op = EmbOp(color=colors[0])
    current_block: Block = []
    jumps = 0

    view = memoryview(buf)[HEADER_SIZE:]
    usable = len(view) - len(view) % RECORD_SIZE
    for offset in range(0, usable, RECORD_SIZE):
        stitch = parse_stitch_record(view[offset : offset + RECORD_SIZE])
        pos_x += stitch.dx
        pos_y += stitch.dy

        if not stitch.jump:
            jumps = 0
            current_block.append((pos_x * UNIT_SCALE, pos_y * UNIT_SCALE))
            continue

        jumps += 1
        if jumps == TRIM_JUMP_COUNT and current_block:
            current_op.blocks.append(current_block)
            current_block = []
        if stitch.stop:
            if current_block:
                current_op.blocks.append(current_block)
                current_block = []
            if current_op.blocks:
                ops.append(current_op)
                color_idx = (color_idx + 1) % len(colors)
                current_op = EmbOp(color=colors[color_idx])

    if current_block or current_op.blocks:
        logger.debug(
            "Discarding %d open block(s) and %d pending stitch(es) with no closing stop code.",
            len(current_op.blocks),
            len(current_block),
        )
    logger.debug("Decoded %d record(s) into %d op(s).", usable // RECORD_SIZE, len(ops))
    return ops


# Colors --------------------------------------------------------------------
def _decode_srgb_byte(value: int) -> float:
    vf = value / 255.0
    if vf < 0.0404599:
        return vf / 12.9232102
    return ((vf + 0.055) / 1.055) ** 2.4


def _encode_srgb(value: float) -> float:
    value = max(0.0, min(1.0, value))
    if value <= 0.0031308:
        return value * 12.92
    return 1.055 * value ** (1.0 / 2.4) - 0.055


def srgba(hex_value: int) -> Color:
    """Decode a CSS style ``0xRRGGBBAA`` value into linear RGBA floats."""
    raw = (hex_value & 0xFFFFFFFF).to_bytes(4, "big")
    return (
        _decode_srgb_byte(raw[0]),
        _decode_srgb_byte(raw[1]),
        _decode_srgb_byte(raw[2]),
        raw[3] / 255.0,
    )


def color_to_rgb8(color: Color) -> Tuple[int, int, int]:
    """Convert a linear float color into an 8-bit sRGB triple for drawing."""
    r, g, b = (int(round(_encode_srgb(channel) * 255)) for channel in color[:3])
    return (r, g, b)


ROYGBIV: Tuple[Color, ...] = ((1.0, 0.0, 0.0),)

DEFAULT_PALETTE: Tuple[Color, ...] = (
    srgba(0xE53935FF),
    srgba(0xFB8C00FF),
    srgba(0xFDD835FF),
    srgba(0x43A047FF),
    srgba(0x1E88E5FF),
    srgba(0x3949ABFF),
    srgba(0x8E24AAFF),
)

BACKGROUND_COLOR: Color = srgba(0x111111FF)


# Geometry ------------------------------------------------------------------
@dataclass(frozen=True)
class Rectangle2:
    """Axis-aligned bounds in millimetres."""

    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @classmethod
    def single(cls, point: Point) -> "Rectangle2":
        return cls(point[0], point[1], point[0], point[1])

    def add(self, point: Point) -> "Rectangle2":
        return Rectangle2(
            min(self.min_x, point[0]),
            min(self.min_y, point[1]),
            max(self.max_x, point[0]),
            max(self.max_y, point[1]),
        )

    def with_margin(self, margin: float) -> "Rectangle2":
        return Rectangle2(
            self.min_x - margin,
            self.min_y - margin,
            self.max_x + margin,
            self.max_y + margin,
        )

    @property
    def center(self) -> Point:
        return ((self.min_x + self.max_x) / 2.0, (self.min_y + self.max_y) / 2.0)

    @property
    def size(self) -> Point:
        return (self.max_x - self.min_x, self.max_y - self.min_y)

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.min_x, self.min_y, self.max_x, self.max_y)


def design_bounds(design: Sequence[EmbOp], margin: float = 1.0) -> Rectangle2:
    """Bounds of every stitch in the design, always including the origin."""
    bounds = Rectangle2.single((0.0, 0.0))
    for op in design:
        for block in op.blocks:
            for point in block:
                bounds = bounds.add(point)
    return bounds.with_margin(margin)


@dataclass
class DesignStats:
    op_count: int = 0
    block_count: int = 0
    stitch_count: int = 0
    length_mm: float = 0.0


def design_stats(design: Sequence[EmbOp]) -> DesignStats:
    """Summarise a decoded design; length only counts moves inside blocks."""
    stats = DesignStats(op_count=len(design))
    for op in design:
        stats.block_count += len(op.blocks)
        for block in op.blocks:
            stats.stitch_count += len(block)
            stats.length_mm += sum(math.dist(a, b) for a, b in zip(block, block[1:]))
    return stats
