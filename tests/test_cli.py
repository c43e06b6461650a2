"""Tests for CLI module."""

import os

import numpy as np
import pytest

from slicebot.cli import build_parser, main
from slicebot.normalizer import read_standard

from conftest import write_slice


class TestCLI:
    def test_parser_builds(self):
        assert build_parser() is not None

    def test_generate_args(self):
        parser = build_parser()
        args = parser.parse_args(["generate", "a.wav", "b.wav", "-o", "out",
                                  "--bpm", "140", "--subdivision", "8th note",
                                  "--layering", "--merge-mode", "fifty_fifty", "--seed", "3"])
        assert args.command == "generate"
        assert args.inputs == ["a.wav", "b.wav"]
        assert args.bpm == 140.0
        assert args.subdivision == "8th note"
        assert args.layering
        assert args.merge_mode == "fifty_fifty"
        assert args.seed == 3
        assert not args.no_fade

    def test_stutter_args(self):
        parser = build_parser()
        args = parser.parse_args(["stutter", "s.wav", "-o", "out.wav", "--stutter-count", "6",
                                  "--stutter-truncate", "--preview"])
        assert args.stutter_count == 6
        assert args.stutter_truncate
        assert args.preview

    def test_no_command(self):
        with pytest.raises(SystemExit):
            main([])

    def test_timing(self, capsys):
        main(["timing", "--bpm", "128"])
        out = capsys.readouterr().out
        assert "20672 frames" in out
        assert "no-go zone: 4s" in out

    def test_chain(self, tmp_path, capsys):
        a = write_slice(tmp_path / "a.wav", np.full(100, 5))
        b = write_slice(tmp_path / "b.wav", np.full(50, 6))
        out = str(tmp_path / "chain.wav")
        main(["chain", a, b, "-o", out])
        assert read_standard(out).frames == 150
        assert "Chain (2 slices)" in capsys.readouterr().out

    def test_merge(self, tmp_path):
        a = write_slice(tmp_path / "a.wav", np.full(100, 5))
        b = write_slice(tmp_path / "b.wav", np.full(80, 6))
        out = str(tmp_path / "m.wav")
        main(["merge", a, b, "-o", out, "--mode", "none"])
        assert (read_standard(out).samples == 11).all()

    def test_generate_end_to_end(self, source_wav, tmp_path):
        out = str(tmp_path / "kit")
        slices_json = str(tmp_path / "set.json")
        main(["generate", source_wav, "-o", out, "--bpm", "240", "--count", "3",
              "--seed", "1", "--prefix", "kit", "--slices-json", slices_json])
        names = sorted(os.listdir(out))
        assert names == ["kit_1.wav", "kit_2.wav", "kit_3.wav", "kit_4_chain.wav"]
        assert read_standard(os.path.join(out, "kit_4_chain.wav")).frames == 3 * 11025
        assert os.path.exists(slices_json)

        restored = str(tmp_path / "restored")
        main(["restore", slices_json, "-o", restored, "--prefix", "kit", "--chain-only"])
        assert os.listdir(restored) == ["kit_1_chain.wav"]
