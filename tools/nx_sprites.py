#!/usr/bin/env python3
# This file is part of nxres.
# Copyright (c) 2024-2025 nxres contributors
# SPDX-License-Identifier: MIT

"""
Unified sprite encoding for the ZX Spectrum Next.

A cel of up to 16x16 tiles becomes one "unified" hardware sprite:
  - one anchor tile carrying the absolute position (always emitted first)
  - every other tile as a relative sprite, offset from the anchor by a
    signed byte in pixel units

Sprite attribute record (5 bytes per tile):
  Byte 0: X (anchor: low 8 bits; relative: signed offset)
  Byte 1: Y (anchor: low 8 bits; relative: signed offset)
  Byte 2: PPPP XYRb   P = palette offset, X = x-flip, Y = y-flip,
                      R = rotation, b = X bit 8 (anchor) / 1 (relative)
  Byte 3: VE NNNNNN   V = visible, E = byte 4 used, N = pattern (0-63)
  Byte 4: 0 C B 0000 y
                      C = 1 on relatives (no collision),
                      B = 1 on the anchor (big sprite), y = Y bit 8

Patterns are 16x16 pixels, one byte per pixel (256 colors).
"""

from nx_model import (
    NoAnchorAvailable, NxResError, OffsetOverflow, OversizedTilemap, SpriteTile,
    TooManyPatterns,
)

SPRITE_TILE_SIZE = 16
PATTERN_SIZE = SPRITE_TILE_SIZE * SPRITE_TILE_SIZE  # one byte per pixel
MAX_TILEMAP = 16
MAX_PATTERNS = 64
TRANSPARENT_INDEX = 227
ATTRS_SIZE = 5


# ============================================================================
# Color reduction
# ============================================================================

class ColorReducer:
    """Maps one source pixel to a hardware color byte."""

    def reduce(self, color):
        raise NotImplementedError

    def __call__(self, color):
        return self.reduce(color)


class Next256Colors(ColorReducer):
    """
    Default reducer to the Next 256-color (RRRGGGBB) cube.
    Fully transparent pixels map to transparent_index. Pixels that are
    already indexed pass through unchanged.
    """

    def __init__(self, transparent_index=TRANSPARENT_INDEX):
        self.transparent_index = transparent_index

    def reduce(self, color):
        if isinstance(color, int):
            return color & 0xFF
        r, g, b, a = color
        if a == 0:
            return self.transparent_index
        return rgb_to_next8(r, g, b)


def rgb_to_next8(r, g, b):
    """Convert 8-bit RGB to the Next 8-bit RRRGGGBB color format."""
    return (r & 0b11100000) | ((g & 0b11100000) >> 3) | ((b & 0b11000000) >> 6)


# ============================================================================
# Anchor resolution and tile remapping
# ============================================================================

def raster_order(cel):
    """Tile references of a cel sorted row-major."""
    return sorted(cel.tilemap, key=lambda ref: (ref.y, ref.x))


def resolve_anchor(cel):
    """
    Pick the tile used as the coordinate origin of the unified sprite.

    Relative coordinates are limited to -128..127 pixels, so on wide
    tilemaps the anchor must not sit too far left/up:
      0  1  2  3  4  5  6  7  8  9 10 11 12 13 14 15
                              A
     -8 -7 -6 -5 -4 -3 -2 -1  0 +1 +2 +3 +4 +5 +6 +7
    """
    if cel.width > MAX_TILEMAP or cel.height > MAX_TILEMAP:
        raise OversizedTilemap(
            f"{cel.describe()}: tilemap {cel.width}x{cel.height} is too large to be "
            f"converted to a unified sprite (max {MAX_TILEMAP}x{MAX_TILEMAP})"
        )

    if not cel.tilemap:
        raise NoAnchorAvailable(f"{cel.describe()}: all tiles are empty, no anchor can be used")

    min_x = max(0, cel.width - 8)
    min_y = max(0, cel.height - 8)

    for ref in raster_order(cel):
        if ref.x >= min_x and ref.y >= min_y:
            return ref

    raise NoAnchorAvailable(
        f"{cel.describe()}: no tile at x >= {min_x}, y >= {min_y} can be used as anchor"
    )


def relative_tiles(cel, anchor, mapping=None):
    """
    Tiles of the cel translated so the anchor sits at (0, 0).
    The anchor comes first, the rest follow in raster order. Pattern
    indices go through mapping when given.
    """
    def relative(ref):
        pattern = mapping[ref.pattern] if mapping is not None else ref.pattern
        return SpriteTile(pattern, ref.x - anchor.x, ref.y - anchor.y,
                          ref.x_flip, ref.y_flip, ref.rotation)

    tiles = [relative(anchor)]
    for ref in raster_order(cel):
        if (ref.x, ref.y) != (anchor.x, anchor.y):
            tiles.append(relative(ref))
    return tiles


def dedupe_and_remap(cel, anchor):
    """
    Collapse repeated tiles of a cel into a unique pattern list.

    The anchor's tile always takes slot 0; the others keep first-seen
    raster order. Returns (unique_tiles, remapped) where remapped holds a
    SpriteTile per tile reference with compact pattern indices.
    """
    unique_tiles = [anchor.tile]
    mapping = {anchor.pattern: 0}

    for ref in raster_order(cel):
        if ref.pattern not in mapping:
            mapping[ref.pattern] = len(unique_tiles)
            unique_tiles.append(ref.tile)

    return unique_tiles, relative_tiles(cel, anchor, mapping)


# ============================================================================
# Attribute encoding
# ============================================================================

def encode_attrs(tile, is_anchor, pattern_offset=0):
    """
    Encode one 5-byte sprite attribute record.
    Out-of-range relative offsets wrap; callers validate with check_offset().
    """
    x = tile.x * SPRITE_TILE_SIZE
    y = tile.y * SPRITE_TILE_SIZE

    # Attr 2
    palette_offset = 0  # Common palette for all sprites
    attr2_bit0 = (x & 0x100) >> 8 if is_anchor else 1  # X MSB or relative palette
    attr2_flags = ((0x02 if tile.rotation else 0x00) |
                   (0x04 if tile.y_flip else 0x00) |
                   (0x08 if tile.x_flip else 0x00))
    attr2 = (palette_offset << 4) | attr2_flags | attr2_bit0

    # Attr 3: visible, attribute 4 used
    attr3 = ((tile.pattern + pattern_offset) & 0x3F) | 0xC0

    # Attr 4: bits 1-4 are zero (no scaling)
    attr4_bit0 = (y & 0x100) >> 8 if is_anchor else 0  # Y MSB or absolute pattern
    attr4 = attr4_bit0 | (0x20 if is_anchor else 0x40)  # Big sprite / no collision

    return bytes([x & 0xFF, y & 0xFF, attr2, attr3, attr4])


def check_offset(cel, tile):
    """Raise OffsetOverflow if a relative tile does not fit a signed byte."""
    for axis, value in (('x', tile.x), ('y', tile.y)):
        pixels = value * SPRITE_TILE_SIZE
        if not -128 <= pixels <= 127:
            raise OffsetOverflow(
                f"{cel.describe()}: relative {axis} offset {pixels} of tile "
                f"pattern {tile.pattern} is outside -128..127"
            )


def encode_tiles(cel, tiles, pattern_offset=0):
    """Attribute records for anchor-first relative tiles."""
    attrs = bytearray()
    for i, tile in enumerate(tiles):
        is_anchor = i == 0
        if not is_anchor:
            check_offset(cel, tile)
        attrs.extend(encode_attrs(tile, is_anchor, pattern_offset))
    return bytes(attrs)


def cel_attrs(cel, pattern_offset=0):
    """
    Attribute records using tileset-wide pattern indices, shifted by the
    family's base index in pattern memory (sprite slot layout).
    """
    anchor = resolve_anchor(cel)
    return encode_tiles(cel, relative_tiles(cel, anchor), pattern_offset)


def cel_attrs_and_patterns(cel, reducer):
    """
    Attribute records plus the deduplicated patterns they reference.
    Pattern indices are relative to the anchor's pattern (slot 0).
    Returns (attrs, patterns).
    """
    anchor = resolve_anchor(cel)
    unique_tiles, tiles = dedupe_and_remap(cel, anchor)
    if len(unique_tiles) > MAX_PATTERNS:
        raise TooManyPatterns(
            f"{cel.describe()}: {len(unique_tiles)} unique patterns "
            f"(max {MAX_PATTERNS})"
        )
    return encode_tiles(cel, tiles), pack_patterns(unique_tiles, reducer)


def cel_payload(cel, reducer):
    """Binary payload of a frame: attribute records followed by patterns."""
    attrs, patterns = cel_attrs_and_patterns(cel, reducer)
    return attrs + patterns


def cel_offset(cel):
    """
    Drawing offset of the anchor, in pixels: horizontally from the middle
    of the cel (shifted by half its x position), vertically from its bottom.
    """
    anchor = resolve_anchor(cel)
    offset_x = anchor.x * SPRITE_TILE_SIZE - (cel.width * SPRITE_TILE_SIZE + cel.x_pos) // 2
    offset_y = -cel.height * SPRITE_TILE_SIZE
    return offset_x, offset_y


# ============================================================================
# Patterns
# ============================================================================

def pack_patterns(tiles, reducer):
    """One reduced color byte per pixel, tiles concatenated in order."""
    buffer = bytearray()
    for tile in tiles:
        buffer.extend(reducer(pixel) for pixel in tile.content)
    return bytes(buffer)


def tileset_to_patterns(tileset, reducer):
    """Sprite patterns of a whole 16x16 tileset."""
    if tileset.width != SPRITE_TILE_SIZE or tileset.height != SPRITE_TILE_SIZE:
        raise NxResError(
            f"Only {SPRITE_TILE_SIZE}x{SPRITE_TILE_SIZE} tilesets are supported for "
            f"sprites (got {tileset.width}x{tileset.height})"
        )
    return pack_patterns(tileset.tiles, reducer)


# ============================================================================
# Sprite families
# ============================================================================

def family_name(layer):
    """Layer names look like 'family:skin'; the family is the part before ':'."""
    return layer.name.split(':', 1)[0]


def is_sprite_tileset(tileset):
    return (tileset is not None and
            tileset.width == SPRITE_TILE_SIZE and tileset.height == SPRITE_TILE_SIZE)


def sprite_layers(sprites):
    """Layers with 16x16 tilesets of all sprites, in sprite then layer order."""
    return [layer for sprite in sprites for layer in sprite.layers
            if is_sprite_tileset(layer.tileset)]


def sprite_families(sprites):
    """Group the tilemap layers of the sprites by family name."""
    families = {}
    for layer in sprite_layers(sprites):
        families.setdefault(family_name(layer), []).append(layer)
    return families


def pattern_indexes(sprites):
    """
    Assign each sprite family a base index in pattern memory, sized by the
    largest tileset among its skins.
    """
    indexes = {}
    index = 0
    for family, layers in sprite_families(sprites).items():
        indexes[family] = index
        index += max(len(layer.tileset.tiles) for layer in layers)

    if index > MAX_PATTERNS:
        raise TooManyPatterns(
            f"Too many patterns: sprite families need {index} (max {MAX_PATTERNS})"
        )

    return indexes


def check_family_patterns(sprites):
    """
    Make sure the deduplicated patterns of every family, across all of its
    skins and frames, fit the pattern memory.
    Returns {family: number of unique patterns}.
    """
    budgets = {}
    for family, layers in sprite_families(sprites).items():
        unique = set()
        for layer in layers:
            for cel in layer.cels:
                unique.update(ref.tile for ref in cel.tilemap)
        if len(unique) > MAX_PATTERNS:
            raise TooManyPatterns(
                f"Family '{family}' needs {len(unique)} unique patterns across "
                f"{len(layers)} skins (max {MAX_PATTERNS})"
            )
        budgets[family] = len(unique)
    return budgets
