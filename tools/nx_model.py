#!/usr/bin/env python3
# This file is part of nxres.
# Copyright (c) 2024-2025 nxres contributors
# SPDX-License-Identifier: MIT

"""
Decoded sprite object model shared by the nxres tools.

The loader in nxres.py builds these objects once; everything else treats
them as read-only. Tilemaps are sparse: a Cel only holds TileRefs for
populated grid cells, each carrying its own (x, y).
"""

from dataclasses import dataclass
from typing import Optional, Tuple, Union


class NxResError(Exception):
    """Custom exception for nxres errors."""
    pass


class OversizedTilemap(NxResError):
    """Cel grid exceeds the 16x16 tiles a unified sprite can address."""
    pass


class NoAnchorAvailable(NxResError):
    """No populated tile can act as the anchor of a unified sprite."""
    pass


class TooManyPatterns(NxResError):
    """Pattern count exceeds the 64 slots of the hardware pattern memory."""
    pass


class MissingRequiredTileset(NxResError):
    """A tileset of the requested kind is not present in the inputs."""
    pass


class OffsetOverflow(NxResError):
    """Relative sprite offset does not fit a signed byte."""
    pass


RGBAColor = Tuple[int, int, int, int]
Pixel = Union[int, RGBAColor]


@dataclass(frozen=True)
class Tile:
    tile_index: int
    content: Tuple[Pixel, ...]


@dataclass(frozen=True)
class Tileset:
    width: int
    height: int
    indexed_color: bool
    tiles: Tuple[Tile, ...]


@dataclass(frozen=True)
class TileRef:
    """A tile placed at grid cell (x, y) of a cel."""
    tile: Tile
    x: int
    y: int
    x_flip: bool = False
    y_flip: bool = False
    rotation: bool = False

    @property
    def pattern(self):
        return self.tile.tile_index


@dataclass(frozen=True)
class SpriteTile:
    """A tile of a unified sprite, positioned relative to the anchor."""
    pattern: int
    x: int
    y: int
    x_flip: bool = False
    y_flip: bool = False
    rotation: bool = False


@dataclass(frozen=True)
class Frame:
    frame_index: int
    duration: int = 100


@dataclass(frozen=True)
class Cel:
    width: int
    height: int
    tilemap: Tuple[TileRef, ...]
    x_pos: int = 0
    y_pos: int = 0
    canvas_width: int = 0
    canvas_height: int = 0
    layer_name: str = ''
    frame_index: int = 0

    def __post_init__(self):
        seen = set()
        for ref in self.tilemap:
            if not (0 <= ref.x < self.width and 0 <= ref.y < self.height):
                raise NxResError(
                    f"{self.describe()}: tile at ({ref.x}, {ref.y}) lies outside "
                    f"the {self.width}x{self.height} tilemap"
                )
            if (ref.x, ref.y) in seen:
                raise NxResError(
                    f"{self.describe()}: more than one tile at ({ref.x}, {ref.y})"
                )
            seen.add((ref.x, ref.y))

    def describe(self):
        return f"Layer '{self.layer_name}' frame {self.frame_index}"


@dataclass(frozen=True)
class Layer:
    name: str
    tileset: Optional[Tileset]
    cels: Tuple[Cel, ...]


@dataclass(frozen=True)
class Sprite:
    name: str
    width: int
    height: int
    layers: Tuple[Layer, ...]
    frames: Tuple[Frame, ...]
    palette: Optional[Tuple[RGBAColor, ...]] = None

    @property
    def tilesets(self):
        """Distinct tilesets used by the layers, in layer order."""
        result = []
        for layer in self.layers:
            if layer.tileset is not None and not any(t is layer.tileset for t in result):
                result.append(layer.tileset)
        return result


@dataclass
class FrameDef:
    """Per-frame record of a page descriptor."""
    n_tiles: int
    n_patterns: int
    offset_x: int
    offset_y: int
    identifier: str
    binary_filename: str
    binary_size: int
