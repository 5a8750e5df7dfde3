#!/usr/bin/env python3
# This file is part of nxres.
# Copyright (c) 2024-2025 nxres contributors
# SPDX-License-Identifier: MIT

"""
Generate a simple test sprite for testing the asset pipeline.
Creates a 64x64 tile sheet with 4 frames of a spinning 32x32 ball (one
row of four 16x16 tiles per frame) and the YAML file describing it.
"""

import sys
from pathlib import Path

try:
    import yaml
except ImportError:
    print("Error: PyYAML required. Install with: pip install pyyaml", file=sys.stderr)
    sys.exit(1)

try:
    from PIL import Image, ImageDraw
except ImportError:
    print("Error: Pillow required. Install with: pip install pillow", file=sys.stderr)
    sys.exit(1)

FRAMES = 4
BALL_SIZE = 32
TILE = 16


def draw_frame(frame):
    """Draw one 32x32 ball frame with a rotating highlight."""
    img = Image.new('RGBA', (BALL_SIZE, BALL_SIZE), (0, 0, 0, 0))
    draw = ImageDraw.Draw(img)

    # Colors
    ball_color = (255, 128, 0)  # Orange
    highlight = (255, 200, 100)
    shadow = (180, 80, 0)

    draw.ellipse([3, 3, 28, 28], fill=ball_color)

    highlight_pos = [(8, 8), (20, 8), (20, 20), (8, 20)]
    hx, hy = highlight_pos[frame]
    draw.ellipse([hx, hy, hx + 5, hy + 5], fill=highlight)

    # Shadow on opposite side
    sx, sy = highlight_pos[(frame + 2) % 4]
    draw.ellipse([sx, sy, sx + 4, sy + 4], fill=shadow)

    return img


def build_tile_sheet():
    """Tile sheet: frame N occupies row N as tiles TL, TR, BL, BR."""
    sheet = Image.new('RGBA', (4 * TILE, FRAMES * TILE), (0, 0, 0, 0))
    for frame in range(FRAMES):
        img = draw_frame(frame)
        for i, (tx, ty) in enumerate([(0, 0), (1, 0), (0, 1), (1, 1)]):
            tile = img.crop((tx * TILE, ty * TILE, (tx + 1) * TILE, (ty + 1) * TILE))
            sheet.paste(tile, (i * TILE, frame * TILE))
    return sheet


def build_config(sheet_name):
    cels = []
    for frame in range(FRAMES):
        base = frame * 4
        cels.append({'tiles': [f"{base} {base + 1}", f"{base + 2} {base + 3}"]})

    return {
        'slots': ['ball'],
        'sprites': [{
            'name': 'ball',
            'canvas': [BALL_SIZE, BALL_SIZE],
            'tileset': sheet_name,
            'palette': {'colors': ['#000000', '#ff8000', '#ffc864', '#b45000']},
            'frames': [{'duration': 100} for _ in range(FRAMES)],
            'layers': [{'name': 'ball:orange', 'cels': cels}],
        }],
    }


def main():
    output_dir = Path(sys.argv[1] if len(sys.argv) > 1 else '.')
    output_dir.mkdir(parents=True, exist_ok=True)

    sheet_path = output_dir / 'ball_tiles.png'
    yaml_path = output_dir / 'ball.yaml'

    build_tile_sheet().save(sheet_path)
    with open(yaml_path, 'w') as f:
        yaml.safe_dump(build_config(sheet_path.name), f, sort_keys=False)

    print(f"Generated {sheet_path} and {yaml_path}")


if __name__ == '__main__':
    main()
