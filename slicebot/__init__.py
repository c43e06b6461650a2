"""slicebot: beat-synchronized audio slicing, layering and stutter effects."""

from slicebot.core import StandardBuffer, SAMPLE_RATE, save_standard
from slicebot.normalizer import AudioAsset, decode_range, read_standard
from slicebot.effects import trim_to_length, fade, normalize, reverse
from slicebot.timing import Subdivision, slice_frames, no_go_zone, legal_start_window
from slicebot.slices import SliceSpec, SliceSet
from slicebot.exporter import EffectFlags, SliceExporter
from slicebot.merge import MergeMode, merge
from slicebot.stutter import StutterConfig, stutter
from slicebot.chain import assemble_chain, write_chain
from slicebot.orchestrator import SliceOptions, SliceSetOrchestrator

__version__ = "0.1.0"
