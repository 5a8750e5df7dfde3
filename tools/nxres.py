#!/usr/bin/env python3
# This file is part of nxres.
# Copyright (c) 2024-2025 nxres contributors
# SPDX-License-Identifier: MIT

"""
nxres - ZX Spectrum Next Sprite Resource Compiler

Processes tiled sprite definitions from YAML and generates:
  - one binary file per frame (sprite attributes + deduplicated patterns)
  - assembler files grouping the frames by 8KB memory page
  - optional sprite pattern bank, tile definitions, palettes and
    sprite slot metadata

Usage:
    nxres assets.yaml [more.yaml ...] -o output_dir

YAML format:
    # Optional: order of the sprite families in the slot table
    slots: [hero]

    sprites:
      - name: hero
        canvas: [32, 32]            # optional, defaults to the largest cel
        tileset: assets/hero.png    # sliced into tile_size x tile_size tiles
        tile_size: 16               # optional, default 16
        indexed: false              # true keeps palette indices (mode P PNG)
        palette:                    # optional
          colors: ["#000000", "#ff8000"]   # or  source: assets/hero_pal.png
        frames: [{duration: 100}, {duration: 150}]
        layers:
          - name: "hero:red"        # family 'hero', skin 'red'
            cels:
              - position: [0, 0]    # pixel offset within the canvas
                tiles:              # '.' = empty, suffixes x/y/r = flips/rotation
                  - "0 1"
                  - ". 2x"
              - tiles:
                  - "3 4"
                  - "5 6"
          - name: background
            tileset: assets/bg.png  # per-layer tileset (here 8x8 indexed)
            tile_size: 8
            indexed: true
            cels: [...]
"""

import argparse
import os
import sys
import re
from pathlib import Path

try:
    import yaml
except ImportError:
    print("Error: PyYAML required. Install with: pip install pyyaml", file=sys.stderr)
    sys.exit(1)

try:
    from PIL import Image
except ImportError:
    print("Error: Pillow required. Install with: pip install pillow", file=sys.stderr)
    sys.exit(1)

from framedef import write_frame_definitions
from nx_model import Cel, Frame, Layer, NxResError, Sprite, Tile, TileRef, Tileset
from nx_sprites import Next256Colors, is_sprite_tileset
from nx_writers import (
    PALETTE_FORMATS, check_slots, write_metadata, write_palette, write_patterns,
)
from tiledef_utils import write_tile_definitions

TILE_TOKEN = re.compile(r'^(\d+)([xyr]*)$')


# ============================================================================
# Images
# ============================================================================

def load_and_validate_image(source_path, yaml_dir):
    """Load an image, resolving its path relative to the YAML file."""
    if not os.path.isabs(source_path):
        source_path = os.path.join(yaml_dir, source_path)

    if not os.path.exists(source_path):
        raise NxResError(f"Source file not found: {source_path}")

    try:
        img = Image.open(source_path)
        img.load()
    except Exception as e:
        raise NxResError(f"Failed to load image {source_path}: {e}")

    return img, source_path


def convert_to_rgba(img):
    """
    Convert image to RGBA. Palette images keep their transparency info,
    which PIL applies to the alpha channel on conversion.
    """
    if img.mode == 'RGBA':
        return img
    return img.convert('RGBA')


def load_tileset(source, tile_size, indexed, yaml_dir):
    """
    Slice a tile sheet into tile_size x tile_size tiles, row-major.
    Indexed tilesets need a palette (mode P) or grayscale (mode L) image
    and keep the raw indices; the others keep RGBA pixels.
    """
    img, source_path = load_and_validate_image(source, yaml_dir)
    img_width, img_height = img.size

    if img_width % tile_size != 0 or img_height % tile_size != 0:
        raise NxResError(
            f"{source_path}: Image size {img_width}x{img_height} is not a multiple "
            f"of the tile size {tile_size}"
        )

    if indexed:
        if img.mode not in ('P', 'L'):
            raise NxResError(
                f"{source_path}: indexed tilesets need a palette or grayscale image "
                f"(got mode {img.mode})"
            )
    else:
        img = convert_to_rgba(img)

    tiles = []
    for row in range(img_height // tile_size):
        for col in range(img_width // tile_size):
            x = col * tile_size
            y = row * tile_size
            crop = img.crop((x, y, x + tile_size, y + tile_size))
            tiles.append(Tile(len(tiles), tuple(crop.getdata())))

    return Tileset(tile_size, tile_size, bool(indexed), tuple(tiles))


def parse_color(value, pal_name):
    """'#RRGGBB', '#RRGGBBAA' or 0xRRGGBB -> (r, g, b, a)"""
    if isinstance(value, int):
        return ((value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF, 255)

    text = str(value).strip().lstrip('#')
    if not re.match(r'^([0-9a-fA-F]{6}|[0-9a-fA-F]{8})$', text):
        raise NxResError(f"Palette '{pal_name}': invalid color '{value}'")
    channels = [int(text[i:i + 2], 16) for i in range(0, len(text), 2)]
    if len(channels) == 3:
        channels.append(255)
    return tuple(channels)


def load_palette(pal_def, pal_name, yaml_dir):
    """
    Process a palette definition.
    Returns: tuple of (r, g, b, a) colors
    """
    if 'colors' in pal_def:
        colors = [parse_color(c, pal_name) for c in pal_def['colors']]

    elif 'source' in pal_def:
        img, source_path = load_and_validate_image(pal_def['source'], yaml_dir)
        if img.mode == 'P':
            # Palette image: take its palette as is
            raw = img.getpalette()
            colors = [(raw[i], raw[i + 1], raw[i + 2], 255) for i in range(0, len(raw), 3)]
        else:
            # Any other image: distinct colors in order of appearance
            colors = []
            seen = set()
            for color in convert_to_rgba(img).getdata():
                if color not in seen:
                    seen.add(color)
                    colors.append(color)

    else:
        raise NxResError(f"Palette '{pal_name}' must have either 'colors' or 'source'")

    if len(colors) > 256:
        print(f"Warning: palette '{pal_name}' has more than 256 colors, truncating",
              file=sys.stderr)
        colors = colors[:256]

    return tuple(colors)


# ============================================================================
# Sprites
# ============================================================================

def parse_tilemap(rows, tileset, where):
    """
    Parse the rows of a cel tilemap into tile references.
    Returns: (width, height, tilemap)
    """
    tilemap = []
    width = 0
    for y, row in enumerate(rows):
        tokens = str(row).split()
        width = max(width, len(tokens))
        for x, token in enumerate(tokens):
            if token == '.':
                continue
            match = TILE_TOKEN.match(token)
            if not match:
                raise NxResError(f"{where}: invalid tile '{token}' at ({x}, {y})")
            tile_id = int(match.group(1))
            if tileset is None or tile_id >= len(tileset.tiles):
                count = len(tileset.tiles) if tileset else 0
                raise NxResError(
                    f"{where}: tile {tile_id} at ({x}, {y}) out of range (tileset has {count} tiles)"
                )
            flags = match.group(2)
            tilemap.append(TileRef(tileset.tiles[tile_id], x, y,
                                   x_flip='x' in flags, y_flip='y' in flags,
                                   rotation='r' in flags))

    return width, len(rows), tuple(tilemap)


def frame_duration(frame_def):
    """Frames are given as {duration: ms}, a bare duration or null."""
    if frame_def is None:
        return 100
    if isinstance(frame_def, int):
        return frame_def
    return frame_def.get('duration', 100)


def process_sprite(sprite_def, yaml_dir, tileset_cache=None):
    """
    Process a sprite definition into a Sprite.
    tileset_cache shares identical tile sheets between layers and sprites.
    """
    if tileset_cache is None:
        tileset_cache = {}

    name = sprite_def.get('name')
    if not name:
        raise NxResError("Sprite missing 'name' field")

    def tileset_for(owner):
        source = owner.get('tileset', sprite_def.get('tileset'))
        if not source:
            return None
        tile_size = owner.get('tile_size', sprite_def.get('tile_size', 16))
        indexed = owner.get('indexed', sprite_def.get('indexed', False))
        key = (source, tile_size, bool(indexed))
        if key not in tileset_cache:
            tileset_cache[key] = load_tileset(source, tile_size, indexed, yaml_dir)
        return tileset_cache[key]

    layer_defs = sprite_def.get('layers', [])
    if not layer_defs:
        raise NxResError(f"Sprite '{name}' has no layers")

    frames_spec = sprite_def.get('frames')
    if frames_spec is None:
        n_frames = max(len(layer_def.get('cels', [])) for layer_def in layer_defs)
        frames = tuple(Frame(i) for i in range(n_frames))
    elif isinstance(frames_spec, int):
        frames = tuple(Frame(i) for i in range(frames_spec))
    else:
        frames = tuple(Frame(i, frame_duration(f)) for i, f in enumerate(frames_spec))

    canvas = sprite_def.get('canvas')

    layers = []
    for layer_def in layer_defs:
        layer_name = layer_def.get('name')
        if not layer_name:
            raise NxResError(f"Sprite '{name}': layer missing 'name' field")

        tileset = tileset_for(layer_def)
        cel_defs = layer_def.get('cels', [])
        if cel_defs and tileset is None:
            raise NxResError(f"Sprite '{name}' layer '{layer_name}' has cels but no tileset")
        if tileset is not None and len(cel_defs) != len(frames):
            raise NxResError(
                f"Sprite '{name}' layer '{layer_name}': {len(cel_defs)} cels "
                f"for {len(frames)} frames"
            )

        cels = []
        for frame, cel_def in zip(frames, cel_defs):
            where = f"Layer '{layer_name}' frame {frame.frame_index}"
            width, height, tilemap = parse_tilemap(cel_def.get('tiles', []), tileset, where)
            width, height = cel_def.get('size', [width, height])
            x_pos, y_pos = cel_def.get('position', [0, 0])
            cels.append(Cel(width, height, tilemap, x_pos, y_pos,
                            layer_name=layer_name, frame_index=frame.frame_index))
        layers.append((layer_name, tileset, cels))

    # Canvas defaults to the extent of the largest cel
    if canvas:
        canvas_width, canvas_height = canvas
    else:
        canvas_width = max([c.x_pos + c.width * ts.width
                            for _, ts, cels in layers for c in cels] or [0])
        canvas_height = max([c.y_pos + c.height * ts.height
                             for _, ts, cels in layers for c in cels] or [0])

    palette = None
    if sprite_def.get('palette'):
        palette = load_palette(sprite_def['palette'], name, yaml_dir)

    return Sprite(
        name=name,
        width=canvas_width,
        height=canvas_height,
        layers=tuple(
            Layer(layer_name, tileset, tuple(
                Cel(c.width, c.height, c.tilemap, c.x_pos, c.y_pos,
                    canvas_width, canvas_height, c.layer_name, c.frame_index)
                for c in cels))
            for layer_name, tileset, cels in layers
        ),
        frames=frames,
        palette=palette,
    )


# ============================================================================
# Configuration
# ============================================================================

def load_yaml_config(yaml_path):
    """
    Load a YAML config file and resolve all source paths to absolute paths.
    Returns: (config dict, yaml_dir Path)
    """
    yaml_path = Path(yaml_path)
    if not yaml_path.exists():
        raise NxResError(f"YAML file not found: {yaml_path}")

    yaml_dir = yaml_path.parent

    with open(yaml_path) as f:
        try:
            config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise NxResError(f"Invalid YAML in {yaml_path}: {e}")

    if not config:
        return {}, yaml_dir

    # Resolve all source paths to absolute paths
    # This allows merging configs from different directories
    def resolve(owner, key):
        if owner.get(key) and not os.path.isabs(owner[key]):
            owner[key] = str(yaml_dir / owner[key])

    for sprite in config.get('sprites', []):
        resolve(sprite, 'tileset')
        if isinstance(sprite.get('palette'), dict):
            resolve(sprite['palette'], 'source')
        for layer in sprite.get('layers', []):
            resolve(layer, 'tileset')

    return config, yaml_dir


def merge_configs(base_config, additional_config):
    """Merge two asset configs. Additional config is appended to base."""
    return {
        'slots': base_config.get('slots', []) + additional_config.get('slots', []),
        'sprites': base_config.get('sprites', []) + additional_config.get('sprites', []),
    }


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='ZX Spectrum Next Sprite Resource Compiler - Process tiled sprites from YAML',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument('yaml_files', nargs='+', help='Input YAML files')
    parser.add_argument('-o', '--output', default='.', help='Output directory')
    parser.add_argument('--page', type=int, default=0, help='First memory page for frame definitions')
    parser.add_argument('--asm-dir', default='asm', help='Frame definition (asm) directory')
    parser.add_argument('--bin-dir', default='bin', help='Frame binary directory')
    parser.add_argument('--patterns', help='Sprite pattern bank output filename')
    parser.add_argument('--tiledefs', help='Tile definitions output filename')
    parser.add_argument('--palettes', action='store_true', help='Write one <sprite>.pal per sprite')
    parser.add_argument('--palette-format', choices=PALETTE_FORMATS, default='rgb332',
                        help='Palette output format')
    parser.add_argument('--metadata', help='Sprite slot metadata (C) output filename')
    parser.add_argument('--transparent', type=int, default=227, help='Transparent color index')
    parser.add_argument('-v', '--verbose', action='store_true', help='Verbose output')

    args = parser.parse_args(argv)

    # Load and merge all YAML files, in command line order
    config = {}
    try:
        for yaml_file in args.yaml_files:
            file_config, _ = load_yaml_config(yaml_file)
            config = merge_configs(config, file_config)
            if args.verbose:
                print(f"Loaded {yaml_file}")
    except NxResError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    sprite_defs = config.get('sprites', [])
    if not sprite_defs:
        print("Error: No sprites to process", file=sys.stderr)
        sys.exit(1)

    sprites = []
    tileset_cache = {}
    for sprite_def in sprite_defs:
        try:
            sprite = process_sprite(sprite_def, '.', tileset_cache)
            sprites.append(sprite)

            if args.verbose:
                print(f"Processed '{sprite.name}': {sprite.width}x{sprite.height}, "
                      f"{len(sprite.frames)} frames, {len(sprite.layers)} layers")

        except NxResError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)

    for sprite in sprites:
        for layer in sprite.layers:
            if layer.tileset is not None and not is_sprite_tileset(layer.tileset) and args.verbose:
                print(f"Layer '{layer.name}' uses {layer.tileset.width}x{layer.tileset.height} "
                      f"tiles, not a sprite layer")

    # Create output directory
    output_dir = Path(args.output)
    output_dir.mkdir(parents=True, exist_ok=True)

    reducer = Next256Colors(args.transparent)
    generated = []

    try:
        # Pattern memory of the slot table must fit before any frame is written
        if args.metadata:
            check_slots(sprites, config.get('slots', []))

        asm_dir = output_dir / args.asm_dir
        bin_dir = output_dir / args.bin_dir
        pages = write_frame_definitions(sprites, args.page, str(asm_dir), str(bin_dir), reducer)
        for page in pages:
            if args.verbose:
                print(f"Page {page.page}: {len(page.frames)} frames, "
                      f"{page.memory_usage()} bytes")
            generated.append(f"{page.asm_filename(str(asm_dir))} ({len(page.frames)} frames)")

        tilesets = []
        for sprite in sprites:
            for tileset in sprite.tilesets:
                if not any(t is tileset for t in tilesets):
                    tilesets.append(tileset)

        if args.patterns:
            patterns_path = output_dir / args.patterns
            size = write_patterns(tilesets, patterns_path, reducer)
            generated.append(f"{patterns_path} ({size} bytes)")

        if args.tiledefs:
            tiledefs_path = output_dir / args.tiledefs
            size = write_tile_definitions(tilesets, tiledefs_path)
            generated.append(f"{tiledefs_path} ({size} bytes)")

        if args.palettes:
            for sprite in sprites:
                if not sprite.palette:
                    print(f"Warning: sprite '{sprite.name}' has no palette, skipping",
                          file=sys.stderr)
                    continue
                palette_path = output_dir / f"{sprite.name}.pal"
                size = write_palette(sprite, palette_path, args.palette_format)
                generated.append(f"{palette_path} ({size} bytes)")

        if args.metadata:
            metadata_path = output_dir / args.metadata
            write_metadata(sprites, config.get('slots', []), metadata_path)
            generated.append(f"{metadata_path}")

    except NxResError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    n_frames = sum(len(page.frames) for page in pages)

    print("Generated:")
    for line in generated:
        print(f"  {line}")
    print(f"Total: {n_frames} frames in {len(pages)} pages, {len(sprites)} sprites")


if __name__ == '__main__':
    main()
