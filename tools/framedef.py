#!/usr/bin/env python3
# This file is part of nxres.
# Copyright (c) 2024-2025 nxres contributors
# SPDX-License-Identifier: MIT

"""
Frame definitions grouped by 8KB memory page.

Every frame of every skin becomes a binary file (sprite attributes followed
by its patterns) and an entry in a z88dk assembler file, one per page:

        SECTION PAGE_<n>

        PUBLIC _sprites_hero_00, _sprites_hero_01

    _sprites_hero_00:
        db 0x04, 0x03, 0xf0, 0xe0     ; nTiles, nPatterns, offsetX, offsetY
        incbin "./bin/sprites_hero_00.bin"

Frames are assigned to the first page with room left, in input order
(skin by skin, frame by frame). A new page takes the next number.
"""

import os
import re

from nx_model import FrameDef, NxResError
from nx_sprites import (
    PATTERN_SIZE, cel_attrs_and_patterns, cel_offset, check_family_patterns, sprite_layers,
)

PAGE_SIZE = 8192
FRAMEDEF_OVERHEAD = 4  # nTiles, nPatterns, offsetX and offsetY


class FrameDefFile:
    """Frame definitions assigned to one memory page."""

    def __init__(self, page):
        self.page = page
        self.frames = []

    def add_frame(self, frame_def):
        self.frames.append(frame_def)

    def memory_usage(self):
        return sum(frame.binary_size + FRAMEDEF_OVERHEAD for frame in self.frames)

    def fits_in_page(self, frame_size):
        return self.memory_usage() + frame_size + FRAMEDEF_OVERHEAD <= PAGE_SIZE

    def asm_filename(self, asm_dir):
        return os.path.join(asm_dir, f"sprites_page_{self.page:02d}.asm")

    def to_asm(self, asm_dir):
        """Assembler source for this page; include paths relative to asm_dir."""
        symbols = [symbol_name(frame) for frame in self.frames]
        lines = [
            f"\tSECTION PAGE_{self.page}",
            "",
            f"\tPUBLIC {', '.join(symbols)}",
            "",
        ]

        for frame, symbol in zip(self.frames, symbols):
            data = [frame.n_tiles, frame.n_patterns, frame.offset_x, frame.offset_y]
            lines.append(f"{symbol}:")
            lines.append(f"\tdb {', '.join(format_byte(b) for b in data)}")
            lines.append(f"\tincbin \"{compose_path(asm_dir, frame.binary_filename)}\"")
            lines.append("")

        return '\n'.join(lines) + '\n'

    def write_asm(self, asm_dir):
        output_path = self.asm_filename(asm_dir)
        with open(output_path, 'w', newline='\n') as f:
            f.write(self.to_asm(asm_dir))
        return output_path


def pack_pages(frame_defs, first_page):
    """
    First-fit assignment of frame definitions to pages, in input order.
    Returns the list of FrameDefFile, numbered from first_page.
    """
    pages = []
    next_page = first_page

    for frame_def in frame_defs:
        if frame_def.binary_size + FRAMEDEF_OVERHEAD > PAGE_SIZE:
            raise NxResError(
                f"Frame '{frame_def.identifier}' needs {frame_def.binary_size} bytes, "
                f"more than a {PAGE_SIZE} byte page can hold"
            )

        for page in pages:
            if page.fits_in_page(frame_def.binary_size):
                break
        else:
            page = FrameDefFile(next_page)
            next_page += 1
            pages.append(page)

        page.add_frame(frame_def)

    return pages


def format_byte(value):
    return f"0x{value & 0xFF:02x}"


def sanitize(name):
    return re.sub(r'[^A-Za-z0-9_]', '_', name)


def symbol_name(frame_def):
    """Assembler symbol of a frame: its binary file name without extension."""
    base = os.path.splitext(os.path.basename(frame_def.binary_filename))[0]
    return f"_{sanitize(base)}"


def compose_path(reference_dir, target_path):
    """Path of target_path relative to reference_dir, always starting with '.'."""
    relative = os.path.relpath(os.path.abspath(target_path), os.path.abspath(reference_dir))
    relative = relative.replace(os.sep, '/')
    return relative if relative.startswith('.') else f"./{relative}"


def binary_filename(binary_dir, skin, frame_index):
    return os.path.join(binary_dir, f"sprites_{sanitize(skin)}_{frame_index:02d}.bin")


def build_frame_payloads(sprites, binary_dir, reducer):
    """
    Encode every frame of every skin.
    Every family must fit the pattern memory before anything is encoded.
    Returns a list of (FrameDef, payload) in skin then frame order.
    """
    check_family_patterns(sprites)

    frames = []
    for layer in sprite_layers(sprites):
        for cel in layer.cels:
            attrs, patterns = cel_attrs_and_patterns(cel, reducer)
            offset_x, offset_y = cel_offset(cel)
            payload = attrs + patterns
            frame_def = FrameDef(
                n_tiles=len(cel.tilemap),
                n_patterns=len(patterns) // PATTERN_SIZE,
                offset_x=offset_x,
                offset_y=offset_y,
                identifier=f"sprite_{layer.name}_{cel.frame_index}",
                binary_filename=binary_filename(binary_dir, layer.name, cel.frame_index),
                binary_size=len(payload),
            )
            frames.append((frame_def, payload))

    return frames


def write_frame_definitions(sprites, page, asm_dir, binary_dir, reducer):
    """
    Write the binary file of every frame and the assembler file of every
    page, starting at page. Nothing is written if any frame fails to encode.
    Returns the list of FrameDefFile.
    """
    frames = build_frame_payloads(sprites, binary_dir, reducer)
    pages = pack_pages([frame_def for frame_def, _ in frames], page)

    os.makedirs(binary_dir, exist_ok=True)
    os.makedirs(asm_dir, exist_ok=True)

    for frame_def, payload in frames:
        with open(frame_def.binary_filename, 'wb') as f:
            f.write(payload)

    for page_file in pages:
        page_file.write_asm(asm_dir)

    return pages
