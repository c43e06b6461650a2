"""Unified CLI entry point for slicebot."""

import argparse
import asyncio
import os
import sys

import numpy as np
from loguru import logger

from slicebot.settings import get_settings


def _configure_logging(verbose: bool) -> None:
    level = "DEBUG" if verbose else get_settings().log_level
    logger.remove()
    logger.add(sys.stderr, level=level, format="<level>{level: <8}</level> {message}")


def _add_seed_arg(parser):
    parser.add_argument("-seed", "--seed", type=int, default=None,
                        help="Random seed for reproducibility")


def _add_output_arg(parser, help_text="Output file path"):
    parser.add_argument("-o", "--output", required=True, help=help_text)


def _add_effect_args(p):
    p.add_argument("--no-fade", action="store_true", help="Disable the 10 ms edge fade")
    p.add_argument("--normalize", action="store_true", help="Peak normalize each slice")
    p.add_argument("--reverse", action="store_true", help="Reverse every slice")
    p.add_argument("--pachinko-reverse", action="store_true",
                   help="Reverse each slice on a coin flip")


def _add_stutter_args(p):
    p.add_argument("--stutter-count", type=int, default=4)
    p.add_argument("--stutter-decay", type=float, default=0.2,
                   help="Volume drop per repeat (0-1)")
    p.add_argument("--stutter-pitch", type=float, default=1.0,
                   help="Pitch amount per repeat")
    p.add_argument("--stutter-truncate", action="store_true")


def _effect_flags(args):
    from slicebot.exporter import EffectFlags
    return EffectFlags(
        fade=not args.no_fade,
        normalize=args.normalize,
        reverse=args.reverse,
        pachinko_reverse=args.pachinko_reverse,
    )


def _stutter_config(args):
    from slicebot.stutter import StutterConfig
    return StutterConfig(
        count=args.stutter_count,
        volume_step=args.stutter_decay,
        pitch_semitones=args.stutter_pitch,
        truncate=args.stutter_truncate,
    )


def _build_orchestrator(args, inputs):
    from slicebot.merge import MergeMode
    from slicebot.normalizer import AudioAsset
    from slicebot.orchestrator import SliceOptions, SliceSetOrchestrator
    from slicebot.sources import SourceMode
    from slicebot.timing import Subdivision, validate_bpm

    validate_bpm(args.bpm)
    subdivision = None if args.subdivision == "random" else Subdivision.parse(args.subdivision)
    options = SliceOptions(
        bpm=float(args.bpm),
        sample_count=args.count,
        subdivision=subdivision,
        source_mode=SourceMode(args.source_mode),
        manual_source=inputs[0] if args.source_mode == "single_manual" else None,
        layering=args.layering,
        merge_mode=MergeMode.parse(args.merge_mode),
        transient=args.transient,
        pachinko_stutter=args.pachinko_stutter,
        effects=_effect_flags(args),
        stutter=_stutter_config(args),
        prefix=args.prefix,
    )
    return SliceSetOrchestrator(
        candidates=[AudioAsset(p) for p in inputs],
        options=options,
        rng=np.random.default_rng(args.seed),
    )


async def _deliver(orchestrator, args) -> list[str]:
    return await orchestrator.export_deliverables(
        args.output,
        prefix=args.prefix,
        individual=not args.chain_only,
        chain=True,
        with_volume=False,
    )


def cmd_generate(args):
    """Slice inputs into a beat-synced set and export slices + chain."""
    orchestrator = _build_orchestrator(args, args.inputs)

    async def run():
        if not await orchestrator.generate():
            return None
        return await _deliver(orchestrator, args)

    written = asyncio.run(run())
    if not written:
        print(f"Generate failed: {orchestrator.state.status_text}", file=sys.stderr)
        sys.exit(1)
    if args.slices_json:
        slice_set = orchestrator.slice_set()
        slice_set.seed = args.seed
        slice_set.save(args.slices_json)
        print(f"Slice set ({len(slice_set.specs)} specs) -> {args.slices_json}")
    print(f"Generate ({orchestrator.state.slice_count} slices) -> {args.output}")


def cmd_restore(args):
    """Re-export a slice set saved with --slices-json."""
    from slicebot.slices import SliceSet
    slice_set = SliceSet.load(args.slices_json)
    args.bpm = slice_set.bpm
    args.layering = slice_set.layering
    orchestrator = _build_orchestrator(args, sorted({s.asset_path for s in slice_set.specs}))

    async def run():
        if not await orchestrator.restore(slice_set):
            return None
        return await _deliver(orchestrator, args)

    written = asyncio.run(run())
    if not written:
        print(f"Restore failed: {orchestrator.state.status_text}", file=sys.stderr)
        sys.exit(1)
    print(f"Restore ({orchestrator.state.slice_count} slices) -> {args.output}")


def cmd_merge(args):
    """Layer two slice files."""
    from slicebot.merge import merge
    from slicebot.normalizer import read_standard
    from slicebot.core import save_standard
    rng = np.random.default_rng(args.seed)
    merged, applied = merge(read_standard(args.a), read_standard(args.b), args.mode, rng)
    save_standard(args.output, merged)
    print(f"Merge ({applied.value}) -> {args.output}")


def cmd_stutter(args):
    """Stutter a single slice file."""
    from slicebot.core import save_standard
    from slicebot.normalizer import read_standard
    from slicebot.stutter import COMMIT_PITCH_DIVISOR, PREVIEW_PITCH_DIVISOR, stutter
    divisor = PREVIEW_PITCH_DIVISOR if args.preview else COMMIT_PITCH_DIVISOR
    result = stutter(read_standard(args.input), _stutter_config(args), args.start,
                     pitch_divisor=divisor, fade_ms=get_settings().stutter_fade_ms)
    save_standard(args.output, result)
    print(f"Stutter x{args.stutter_count} -> {args.output}")


def cmd_chain(args):
    """Concatenate slice files into a chain."""
    from slicebot.chain import write_chain
    write_chain(args.inputs, args.output)
    print(f"Chain ({len(args.inputs)} slices) -> {args.output}")


def cmd_timing(args):
    """Print slice lengths and the no-go zone for a tempo."""
    from slicebot.timing import Subdivision, no_go_zone, slice_frames, slice_seconds
    for sub in Subdivision:
        seconds = slice_seconds(args.bpm, sub)
        print(f"{sub.label:>9}: {float(seconds):.5f}s  {slice_frames(args.bpm, sub)} frames")
    print(f"  no-go zone: {no_go_zone(args.bpm)}s")


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        prog="slicebot",
        description="Beat-synchronized audio slicing, layering and stutter effects",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command")

    def _add_set_args(p):
        p.add_argument("--subdivision", default="1/4 bar",
                       help='"1/2 bar", "1/4 bar", "8th note", "16th note" or "random"')
        p.add_argument("--count", type=int, default=settings.default_sample_count,
                       help="Number of slices (pairs when layering)")
        p.add_argument("--source-mode", default="multi",
                       choices=["multi", "single_random", "single_manual"])
        p.add_argument("--merge-mode", default="crossfade",
                       help="none, crossfade, crossfade_reverse, fifty_fifty, quarter_cuts, pachinko")
        p.add_argument("--transient", action="store_true",
                       help="Start slices just before a transient")
        p.add_argument("--pachinko-stutter", action="store_true",
                       help="Randomly stutter about half the slices")
        p.add_argument("--prefix", default=settings.default_prefix)
        p.add_argument("--chain-only", action="store_true",
                       help="Export only the chain, not individual slices")
        _add_effect_args(p)
        _add_stutter_args(p)
        _add_seed_arg(p)

    # --- generate ---
    p = subparsers.add_parser("generate", help="Slice audio files into a beat-synced set")
    p.add_argument("inputs", nargs="+", help="Source audio files")
    p.add_argument("--bpm", type=float, default=settings.default_bpm)
    p.add_argument("--layering", action="store_true", help="Merge slices in pairs")
    p.add_argument("--slices-json", default=None, help="Save the slice set to JSON")
    _add_set_args(p)
    _add_output_arg(p, "Output directory")
    p.set_defaults(func=cmd_generate)

    # --- restore ---
    p = subparsers.add_parser("restore", help="Re-export a saved slice set")
    p.add_argument("slices_json", help="Slice set JSON from generate --slices-json")
    _add_set_args(p)
    _add_output_arg(p, "Output directory")
    p.set_defaults(func=cmd_restore)

    # --- merge ---
    p = subparsers.add_parser("merge", help="Layer two slices")
    p.add_argument("a", help="First slice")
    p.add_argument("b", help="Second slice")
    p.add_argument("--mode", default="crossfade")
    _add_seed_arg(p)
    _add_output_arg(p)
    p.set_defaults(func=cmd_merge)

    # --- stutter ---
    p = subparsers.add_parser("stutter", help="Stutter a slice")
    p.add_argument("input", help="Slice file")
    p.add_argument("--start", type=float, default=0.0,
                   help="Start of the repeated segment as a fraction of the slice")
    p.add_argument("--preview", action="store_true", help="Use the preview pitch curve")
    _add_stutter_args(p)
    _add_output_arg(p)
    p.set_defaults(func=cmd_stutter)

    # --- chain ---
    p = subparsers.add_parser("chain", help="Concatenate slices")
    p.add_argument("inputs", nargs="+", help="Slice files in order")
    _add_output_arg(p)
    p.set_defaults(func=cmd_chain)

    # --- timing ---
    p = subparsers.add_parser("timing", help="Show slice lengths for a tempo")
    p.add_argument("--bpm", type=float, default=settings.default_bpm)
    p.set_defaults(func=cmd_timing)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv if argv is not None else sys.argv[1:])

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    _configure_logging(args.verbose)
    if getattr(args, "output", None) and args.command in ("generate", "restore"):
        os.makedirs(args.output, exist_ok=True)
    args.func(args)


if __name__ == "__main__":
    main()
