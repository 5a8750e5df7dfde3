#!/usr/bin/env python3
# This file is part of nxres.
# Copyright (c) 2024-2025 nxres contributors
# SPDX-License-Identifier: MIT

"""
Shared utilities for Next tilemap layer tile definitions.

Tile definition format:
- 8x8 pixels, 4bpp (16 colors per tile)
- 32 bytes per tile
- Row-major storage, 4 bytes per line

Each byte holds two pixels: left pixel in bits 4-7, right pixel in bits 0-3.
"""

from nx_model import MissingRequiredTileset, NxResError

TILEDEF_SIZE = 8
TILEDEF_BYTES = TILEDEF_SIZE * TILEDEF_SIZE // 2


def pixels_to_tiledef(pixels, tile_index=0):
    """
    Convert 64 palette indices to a 32-byte tile definition.

    Args:
        pixels: Flat row-major sequence of pixel values (0-15).
        tile_index: Tile number used in error messages.

    Returns:
        bytes: 32-byte tile definition
    """
    if len(pixels) != TILEDEF_SIZE * TILEDEF_SIZE:
        raise NxResError(f"Tile definition needs {TILEDEF_SIZE * TILEDEF_SIZE} "
                         f"pixels (got {len(pixels)})")

    for i, pixel in enumerate(pixels):
        if not 0 <= pixel <= 0xF:
            raise NxResError(
                f"Tile {tile_index}: pixel {i} uses color index {pixel}, "
                f"tile definitions only hold indices 0-15"
            )

    tile = bytearray(TILEDEF_BYTES)
    for i in range(0, len(pixels), 2):
        tile[i // 2] = (pixels[i] << 4) | pixels[i + 1]

    return bytes(tile)


def tileset_to_tiledefs(tileset):
    """Tile definitions of a whole 8x8 indexed-color tileset."""
    if tileset.width != TILEDEF_SIZE or tileset.height != TILEDEF_SIZE:
        raise NxResError(
            f"Only {TILEDEF_SIZE}x{TILEDEF_SIZE} tilesets are supported for tile "
            f"definitions (got {tileset.width}x{tileset.height})"
        )

    buffer = bytearray()
    for tile in tileset.tiles:
        buffer.extend(pixels_to_tiledef(tile.content, tile.tile_index))
    return bytes(buffer)


def is_tiledef_tileset(tileset):
    return (tileset.indexed_color and
            tileset.width == TILEDEF_SIZE and tileset.height == TILEDEF_SIZE)


def write_tile_definitions(tilesets, output_path):
    """
    Write the tile definitions of every 8x8 indexed-color tileset.
    Returns the number of bytes written.
    """
    relevant = [t for t in tilesets if is_tiledef_tileset(t)]
    if not relevant:
        raise MissingRequiredTileset("No 8x8 indexed color tilesets found")

    data = bytearray()
    for tileset in relevant:
        data.extend(tileset_to_tiledefs(tileset))

    with open(output_path, 'wb') as f:
        f.write(data)

    return len(data)
