#!/usr/bin/env python3
# This file is part of nxres.
# Copyright (c) 2024-2025 nxres contributors
# SPDX-License-Identifier: MIT

"""
Output files that sit next to the frame definitions:
  - sprite pattern bank (all 16x16 tilesets, one byte per pixel)
  - palette per sprite
  - sprite slot metadata (C source describing every slot, skin and frame)
"""

import re

from nx_model import MissingRequiredTileset, NxResError
from nx_sprites import (
    ATTRS_SIZE, SPRITE_TILE_SIZE, cel_attrs, cel_offset, pattern_indexes,
    rgb_to_next8, sprite_families, tileset_to_patterns,
)

PALETTE_FORMATS = ('rgb332', 'rgba')


def write_patterns(tilesets, output_path, reducer):
    """
    Write the sprite patterns of every 16x16 tileset.
    Returns the number of bytes written.
    """
    relevant = [t for t in tilesets
                if t.width == SPRITE_TILE_SIZE and t.height == SPRITE_TILE_SIZE]
    if not relevant:
        raise MissingRequiredTileset(
            f"No {SPRITE_TILE_SIZE}x{SPRITE_TILE_SIZE} sprite tilesets found"
        )

    data = bytearray()
    for tileset in relevant:
        data.extend(tileset_to_patterns(tileset, reducer))

    with open(output_path, 'wb') as f:
        f.write(data)

    return len(data)


def palette_to_bytes(palette, fmt='rgb332'):
    """
    rgb332: one Next 8-bit color per slot
    rgba:   the raw RGBA quad per slot
    """
    data = bytearray()
    if fmt == 'rgb332':
        for r, g, b, _ in palette:
            data.append(rgb_to_next8(r, g, b))
    elif fmt == 'rgba':
        for color in palette:
            data.extend(color)
    else:
        raise NxResError(f"Unknown palette format '{fmt}' "
                         f"(expected one of: {', '.join(PALETTE_FORMATS)})")
    return bytes(data)


def write_palette(sprite, output_path, fmt='rgb332'):
    """Write the palette of a sprite. Returns the number of bytes written."""
    if not sprite.palette:
        raise NxResError(f"Sprite '{sprite.name}' has no palette")

    data = palette_to_bytes(sprite.palette, fmt)
    with open(output_path, 'wb') as f:
        f.write(data)
    return len(data)


# ============================================================================
# Sprite slot metadata
# ============================================================================

def c_identifier(name):
    return re.sub(r'[^A-Za-z0-9_]', '_', name)


def sprite_def_label(family):
    return f"sprite_def_{c_identifier(family)}"


def frame_label(layer, cel):
    """Name of the array holding the attributes of a frame in a skin."""
    return c_identifier(f"{layer.name}_{cel.frame_index}")


def max_attributes(layers):
    """Largest number of tiles in any frame of a family."""
    return max(len(cel.tilemap) for layer in layers for cel in layer.cels)


def check_slots(sprites, slots):
    """
    Validate the slot table against the sprite families and assign pattern
    memory. Returns (families, pattern indexes).
    """
    families = sprite_families(sprites)
    pat_indexes = pattern_indexes(sprites)

    for slot in slots:
        if slot not in families:
            raise NxResError(f"Slot '{slot}' does not match any sprite family "
                             f"(known: {', '.join(families) or 'none'})")

    return families, pat_indexes


def generate_metadata(sprites, slots):
    """C source describing the sprite slots, returned as a string."""
    families, pat_indexes = check_slots(sprites, slots)

    lines = [
        "// **** File generated by nxres ***",
        "// **** Do not edit ***",
        "",
        '#include "sprite_slots.h"',
        "",
    ]

    # Attributes of every frame
    for family, layers in families.items():
        pat_index = pat_indexes[family]
        for layer in layers:
            for cel in layer.cels:
                attrs = cel_attrs(cel, pat_index)
                lines.append(f"uint8_t {frame_label(layer, cel)}[] = {{")
                for i in range(0, len(attrs), ATTRS_SIZE):
                    chunk = attrs[i:i + ATTRS_SIZE]
                    lines.append("\t" + ", ".join(f"0x{b:02x}" for b in chunk) + ",")
                lines.append("};")
                lines.append("")

    # Frames of every skin, grouped by family
    for family, layers in families.items():
        lines.append(f"SpriteDef {sprite_def_label(family)}[] = {{")
        for layer in layers:
            lines.append(f"\t// {layer.name}")
            for cel in layer.cels:
                offset_x, offset_y = cel_offset(cel)
                lines.append(f"\t{{{len(cel.tilemap)}, {offset_x}, {offset_y}, "
                             f"{frame_label(layer, cel)}}},")
        lines.append("};")
        lines.append("")

    # Slot table
    lines.append("SpriteSlot spriteSlots[] = {")
    attr_index = 0
    for slot in slots:
        layers = families[slot]
        max_tiles = max_attributes(layers)
        n_frames = len(layers[0].cels)
        n_skins = len(layers)
        lines.append(f"\t// {slot}")
        lines.append(f"\t{{ 0, {attr_index}, {max_tiles}, {pat_indexes[slot]}, "
                     f"{n_frames}, {n_skins}, &{sprite_def_label(slot)}}},")
        attr_index += max_tiles
    lines.append("};")
    lines.append("")

    return '\n'.join(lines)


def write_metadata(sprites, slots, output_path):
    with open(output_path, 'w', newline='\n') as f:
        f.write(generate_metadata(sprites, slots))
