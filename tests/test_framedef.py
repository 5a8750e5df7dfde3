"""
Tests for page packing and frame definition files
"""

import os

import pytest

from conftest import make_cel, make_skins_sprite, make_sprite
from framedef import (
    FRAMEDEF_OVERHEAD, PAGE_SIZE, FrameDefFile, binary_filename, compose_path,
    format_byte, pack_pages, symbol_name, write_frame_definitions,
)
from nx_model import (
    Frame, FrameDef, Layer, NxResError, OversizedTilemap, Sprite, TooManyPatterns,
)
from nx_sprites import Next256Colors, cel_payload


def frame(size, name='frame'):
    return FrameDef(n_tiles=1, n_patterns=1, offset_x=0, offset_y=0,
                    identifier=name, binary_filename=f"bin/{name}.bin",
                    binary_size=size)


class TestPackPages:
    def test_exact_fit_shares_page(self):
        half = PAGE_SIZE // 2 - FRAMEDEF_OVERHEAD
        pages = pack_pages([frame(half, 'a'), frame(half, 'b')], 0)
        assert len(pages) == 1
        assert pages[0].memory_usage() == PAGE_SIZE

    def test_one_byte_over_opens_new_page(self):
        half = PAGE_SIZE // 2 - FRAMEDEF_OVERHEAD
        pages = pack_pages([frame(half, 'a'), frame(half + 1, 'b')], 0)
        assert [len(page.frames) for page in pages] == [1, 1]

    def test_first_fit_in_input_order(self):
        frames = [frame(5000, 'a'), frame(4000, 'b'), frame(3000, 'c')]
        pages = pack_pages(frames, 40)
        assert [page.page for page in pages] == [40, 41]
        assert [f.identifier for f in pages[0].frames] == ['a', 'c']
        assert [f.identifier for f in pages[1].frames] == ['b']

    def test_frame_larger_than_page(self):
        with pytest.raises(NxResError, match="big"):
            pack_pages([frame(PAGE_SIZE - FRAMEDEF_OVERHEAD + 1, 'big')], 0)

    def test_empty_input(self):
        assert pack_pages([], 3) == []


class TestFrameDefFile:
    def test_fits_in_page(self):
        page = FrameDefFile(0)
        page.add_frame(frame(8000))
        assert page.fits_in_page(PAGE_SIZE - 8004 - FRAMEDEF_OVERHEAD)
        assert not page.fits_in_page(PAGE_SIZE - 8004 - FRAMEDEF_OVERHEAD + 1)

    def test_asm_output(self, tmp_path):
        asm_dir = tmp_path / 'asm'
        page = FrameDefFile(5)
        page.add_frame(FrameDef(4, 3, -16, -32, 'sprite_hero:red_0',
                                str(tmp_path / 'bin' / 'sprites_hero_red_00.bin'), 788))
        page.add_frame(FrameDef(1, 1, 300, 0, 'sprite_hero:red_1',
                                str(tmp_path / 'bin' / 'sprites_hero_red_01.bin'), 261))

        assert page.to_asm(str(asm_dir)) == (
            "\tSECTION PAGE_5\n"
            "\n"
            "\tPUBLIC _sprites_hero_red_00, _sprites_hero_red_01\n"
            "\n"
            "_sprites_hero_red_00:\n"
            "\tdb 0x04, 0x03, 0xf0, 0xe0\n"
            "\tincbin \"../bin/sprites_hero_red_00.bin\"\n"
            "\n"
            "_sprites_hero_red_01:\n"
            "\tdb 0x01, 0x01, 0x2c, 0x00\n"
            "\tincbin \"../bin/sprites_hero_red_01.bin\"\n"
            "\n"
        )

    def test_asm_filename(self):
        assert FrameDefFile(7).asm_filename('out') == os.path.join('out', 'sprites_page_07.asm')


class TestNaming:
    def test_symbol_name(self):
        assert symbol_name(frame(1, 'sprites_hero_00')) == '_sprites_hero_00'
        odd = FrameDef(1, 1, 0, 0, 'x', 'some/dir/a-b.c.bin', 1)
        assert symbol_name(odd) == '_a_b_c'

    def test_binary_filename(self):
        assert binary_filename('bin', 'hero:red', 3) == os.path.join('bin', 'sprites_hero_red_03.bin')

    def test_compose_path(self, tmp_path):
        target = str(tmp_path / 'bin' / 'x.bin')
        assert compose_path(str(tmp_path / 'asm'), target) == '../bin/x.bin'
        assert compose_path(str(tmp_path), target) == './bin/x.bin'

    def test_format_byte(self):
        assert format_byte(5) == '0x05'
        assert format_byte(-16) == '0xf0'
        assert format_byte(0x1FF) == '0xff'


class TestWriteFrameDefinitions:
    def test_writes_binaries_and_pages(self, tmp_path, hero_sprite):
        asm_dir = tmp_path / 'asm'
        bin_dir = tmp_path / 'bin'
        pages = write_frame_definitions([hero_sprite], 10, str(asm_dir), str(bin_dir),
                                        Next256Colors())

        assert len(pages) == 1
        frames = pages[0].frames
        assert [f.identifier for f in frames] == [
            'sprite_hero:red_0', 'sprite_hero:red_1',
            'sprite_hero:blue_0', 'sprite_hero:blue_1',
        ]
        assert [(f.n_tiles, f.n_patterns) for f in frames] == [(4, 3), (2, 2)] * 2

        cel = hero_sprite.layers[0].cels[0]
        payload = (bin_dir / 'sprites_hero_red_00.bin').read_bytes()
        assert payload == cel_payload(cel, Next256Colors())
        assert len(payload) == 4 * 5 + 3 * 256
        assert frames[0].binary_size == len(payload)

        asm = (asm_dir / 'sprites_page_10.asm').read_text()
        assert asm.startswith("\tSECTION PAGE_10\n")
        assert '\tincbin "../bin/sprites_hero_blue_01.bin"\n' in asm

    def test_frames_spill_to_next_page(self, tmp_path, tileset):
        # 12 distinct tiles per frame -> 12 * 5 + 12 * 256 bytes per frame
        cells = {(x, y): y * 4 + x for x in range(4) for y in range(3)}
        cels = tuple(make_cel(4, 3, cells, tileset, canvas_width=64, canvas_height=48,
                              layer_name='big', frame_index=i)
                     for i in range(3))
        sprite = Sprite('big', 64, 48, (Layer('big', tileset, cels),),
                        tuple(Frame(i) for i in range(3)))

        pages = write_frame_definitions([sprite], 0, str(tmp_path / 'asm'),
                                        str(tmp_path / 'bin'), Next256Colors())
        assert [len(page.frames) for page in pages] == [2, 1]
        assert (tmp_path / 'asm' / 'sprites_page_01.asm').exists()

    def test_nothing_written_on_error(self, tmp_path, tileset):
        bad = make_sprite('bad', [('bad', [{(0, 0): 1}])], tileset)
        oversized = make_cel(17, 1, {(16, 0): 1}, tileset, layer_name='bad', frame_index=1)
        layer = bad.layers[0]
        bad = bad.__class__(bad.name, 32, 32, (layer.__class__(
            layer.name, tileset, layer.cels + (oversized,)),), bad.frames)

        with pytest.raises(OversizedTilemap):
            write_frame_definitions([bad], 0, str(tmp_path / 'asm'), str(tmp_path / 'bin'),
                                    Next256Colors())
        assert not (tmp_path / 'bin').exists()
        assert not (tmp_path / 'asm').exists()

    def test_family_over_budget_writes_nothing(self, tmp_path):
        # each skin alone fits a page and the pattern memory
        sprite = make_skins_sprite([range(0, 24), range(24, 48), range(48, 72)])

        with pytest.raises(TooManyPatterns, match="72"):
            write_frame_definitions([sprite], 0, str(tmp_path / 'asm'),
                                    str(tmp_path / 'bin'), Next256Colors())
        assert not (tmp_path / 'bin').exists()
        assert not (tmp_path / 'asm').exists()

    def test_n_patterns_counts_unique_tiles(self, tmp_path):
        sprite = make_skins_sprite([[0, 1, 0, 2, 1, 0, 0, 3]])
        pages = write_frame_definitions([sprite], 0, str(tmp_path / 'asm'),
                                        str(tmp_path / 'bin'), Next256Colors())
        frame_def = pages[0].frames[0]
        assert (frame_def.n_tiles, frame_def.n_patterns) == (8, 4)
        assert frame_def.binary_size == 8 * 5 + 4 * 256

    def test_idempotent(self, tmp_path, hero_sprite):
        outputs = []
        for run in ('first', 'second'):
            root = tmp_path / run
            write_frame_definitions([hero_sprite], 0, str(root / 'asm'), str(root / 'bin'),
                                    Next256Colors())
            outputs.append({
                path.relative_to(root): path.read_bytes()
                for path in sorted(root.rglob('*')) if path.is_file()
            })
        assert outputs[0] == outputs[1]
        assert len(outputs[0]) == 5
