"""
Shared fixtures for the nxres tests
"""

import pytest
from PIL import Image

from nx_model import Cel, Frame, Layer, Sprite, Tile, TileRef, Tileset

TILE_PIXELS = 16 * 16


def tile_color(index):
    return ((index * 37) & 0xFF, (index * 91) & 0xFF, (index * 53) & 0xFF, 255)


def make_tileset(count, size=16):
    tiles = tuple(Tile(i, (tile_color(i),) * (size * size)) for i in range(count))
    return Tileset(size, size, False, tiles)


def make_cel(width, height, cells, tileset=None, **kwargs):
    """
    Build a cel from {(x, y): tile} where tile is an index, optionally
    followed by flag letters x/y/r ("3x").
    """
    if tileset is None:
        tileset = make_tileset(128)
    refs = []
    for (x, y), spec in cells.items():
        text = str(spec)
        index = int(text.rstrip('xyr'))
        flags = text[len(str(index)):]
        refs.append(TileRef(tileset.tiles[index], x, y,
                            x_flip='x' in flags, y_flip='y' in flags,
                            rotation='r' in flags))
    return Cel(width, height, tuple(refs), **kwargs)


def make_sprite(name, layers, tileset=None, palette=None):
    """layers: [(layer_name, [cells, ...])] with 2x2 cels on a 32x32 canvas"""
    if tileset is None:
        tileset = make_tileset(16)
    built = []
    n_frames = 0
    for layer_name, frames in layers:
        cels = tuple(
            make_cel(2, 2, cells, tileset, canvas_width=32, canvas_height=32,
                     layer_name=layer_name, frame_index=i)
            for i, cells in enumerate(frames)
        )
        n_frames = max(n_frames, len(cels))
        built.append(Layer(layer_name, tileset, cels))
    return Sprite(name, 32, 32, tuple(built), tuple(Frame(i) for i in range(n_frames)),
                  palette)


def make_skins_sprite(tile_ranges):
    """One 'hero' skin per range, each a single 8-wide cel using those tiles."""
    tileset = make_tileset(128)
    layers = []
    for i, tiles in enumerate(tile_ranges):
        tiles = list(tiles)
        cel = make_cel(8, (len(tiles) + 7) // 8,
                       {(n % 8, n // 8): tile for n, tile in enumerate(tiles)},
                       tileset, layer_name=f"hero:{i}")
        layers.append(Layer(f"hero:{i}", tileset, (cel,)))
    return Sprite('hero', 128, 48, tuple(layers), (Frame(0),))


@pytest.fixture
def tileset():
    return make_tileset(16)


@pytest.fixture
def hero_sprite():
    """Two skins of the 'hero' family, two frames each."""
    frames = [
        {(0, 0): 0, (1, 0): 1, (0, 1): 2, (1, 1): 2},
        {(0, 0): 3, (1, 1): '4x'},
    ]
    return make_sprite('hero', [('hero:red', frames), ('hero:blue', frames)],
                       palette=((0, 0, 0, 255), (255, 128, 0, 255)))


@pytest.fixture
def asset_dir(tmp_path):
    """
    A tile sheet with three 16x16 tiles (red, green, blue), an 8x8 indexed
    tile sheet and a YAML file using them.
    """
    sheet = Image.new('RGBA', (48, 16), (0, 0, 0, 0))
    for i, color in enumerate([(255, 0, 0, 255), (0, 255, 0, 255), (0, 0, 255, 255)]):
        sheet.paste(Image.new('RGBA', (16, 16), color), (i * 16, 0))
    sheet.save(tmp_path / 'hero.png')

    indexed = Image.new('P', (16, 8))
    indexed.putpalette([0, 0, 0, 255, 255, 255] + [0, 0, 0] * 254)
    indexed.putdata([(x + y) % 16 for y in range(8) for x in range(16)])
    indexed.save(tmp_path / 'bg.png')

    (tmp_path / 'hero.yaml').write_text(
        "slots: [hero]\n"
        "sprites:\n"
        "  - name: hero\n"
        "    canvas: [32, 32]\n"
        "    tileset: hero.png\n"
        "    palette:\n"
        "      colors: ['#000000', '#ff8000', 0x00ff00]\n"
        "    frames: [{duration: 100}, 150]\n"
        "    layers:\n"
        "      - name: 'hero:red'\n"
        "        cels:\n"
        "          - tiles:\n"
        "              - '0 1'\n"
        "              - '. 2x'\n"
        "          - position: [8, 0]\n"
        "            tiles:\n"
        "              - '2 2'\n"
        "              - '1y 0r'\n"
        "      - name: background\n"
        "        tileset: bg.png\n"
        "        tile_size: 8\n"
        "        indexed: true\n"
        "        cels:\n"
        "          - tiles: ['0 1']\n"
        "          - tiles: ['1 0']\n"
    )
    return tmp_path
