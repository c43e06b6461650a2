"""Slice set orchestration: generate, reslice, regenerate, shuffle, stutter, export.

All mutation of a session's slice set happens through one SliceSetOrchestrator
on a single asyncio sequence. Long operations run as a single-owner task
(see `submit`); starting a new one cancels the previous one rather than
queueing behind it.

Scratch layout: a full generate wipes every `gen-<n>` directory under the
scratch root and starts a new one. Regenerate-all writes into a new directory
and removes the previous one only once every slice has been re-exported.
"""

from __future__ import annotations

import asyncio
import os
import shutil
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable

import numpy as np
from loguru import logger

from slicebot.chain import write_chain
from slicebot.core import SAMPLE_RATE
from slicebot.errors import (
    ChainError,
    ConfigError,
    DecodeError,
    DetectionRejected,
    ExhaustionError,
    RangeError,
    StutterError,
)
from slicebot.exporter import EffectFlags, SliceExporter
from slicebot.merge import MergeMode, merge_files
from slicebot.normalizer import AudioAsset
from slicebot.settings import Settings, get_settings
from slicebot.slices import SliceSet, SliceSpec
from slicebot.sources import RecorderRegistry, SourceMode, candidate_pool
from slicebot.stutter import StutterConfig, random_stutter_config, stutter_file
from slicebot.timing import (
    Subdivision,
    choose_subdivisions,
    random_subdivision,
    select_start,
    slice_frames,
    slice_seconds,
    validate_bpm,
)
from slicebot.volume import (
    VolumeSetting,
    export_chain,
    export_individual_slices,
    write_loop_chain,
)

StatusListener = Callable[[str, float], None]

CHAIN_NAME = "preview_chain.wav"
LOOP_CHAIN_NAME = "loop_chain.wav"
_INVALIDATING_OPTIONS = {"source_mode", "bpm", "sample_count"}


class Phase(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"
    EXPORTING = "exporting"
    MERGING = "merging"
    ASSEMBLING = "assembling"
    CACHING = "caching"


@dataclass
class SliceOptions:
    """User choices for a generation run."""
    bpm: float = 128.0
    sample_count: int = 8
    subdivision: Subdivision | None = Subdivision.QUARTER_BAR  # None draws per slice
    source_mode: SourceMode = SourceMode.MULTI
    manual_source: str | None = None
    layering: bool = False
    merge_mode: MergeMode = MergeMode.CROSSFADE
    transient: bool = False
    pachinko_stutter: bool = False
    effects: EffectFlags = field(default_factory=EffectFlags)
    stutter: StutterConfig = field(default_factory=StutterConfig)
    prefix: str = "slice"


@dataclass
class SessionState:
    """Everything a UI needs to render the current slice set.

    In layering mode `specs` and `layer_exports` hold 2N entries (slot i is
    paired with slot i + N) while `exported` and `volumes` hold the N merged
    slices that make up the chain.
    """
    specs: list[SliceSpec] = field(default_factory=list)
    exported: list[str] = field(default_factory=list)
    layer_exports: list[str] = field(default_factory=list)
    volumes: list[VolumeSetting] = field(default_factory=list)
    chain_path: str | None = None
    loop_chain_path: str | None = None
    status_text: str = ""
    progress: float = 0.0
    phase: Phase = Phase.IDLE
    selected_index: int | None = None
    caching: bool = False
    stutter_undo: dict[int, str] = field(default_factory=dict)
    clipboard: tuple[list[SliceSpec], VolumeSetting] | None = None

    @property
    def slice_count(self) -> int:
        return len(self.exported)


class SliceSetOrchestrator:
    """Top-level driver for a session's slice set."""

    def __init__(
        self,
        candidates: list[AudioAsset] | None = None,
        options: SliceOptions | None = None,
        settings: Settings | None = None,
        rng: np.random.Generator | None = None,
        registry: RecorderRegistry | None = None,
        scratch_dir: str | None = None,
    ):
        self.settings = settings or get_settings()
        self.options = options or SliceOptions(
            bpm=self.settings.default_bpm,
            sample_count=self.settings.default_sample_count,
        )
        self.rng = rng if rng is not None else np.random.default_rng()
        self.registry = registry
        self.scratch_root = str(scratch_dir or self.settings.scratch_dir)
        self.state = SessionState()
        self.exporter = SliceExporter(self.settings, self.rng)

        self._assets: dict[str, AudioAsset] = {}
        self.candidates = []
        self.set_candidates(candidates or [])
        self._listeners: list[StatusListener] = []
        self._task: asyncio.Task | None = None
        self._cancel_requested = False
        self._generation = 0
        self._gen_dir: str | None = None
        self._serial = 0

    # -- status ---------------------------------------------------------

    def subscribe(self, listener: StatusListener) -> StatusListener:
        self._listeners.append(listener)
        return listener

    def unsubscribe(self, listener: StatusListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _report(self, text: str, progress: float | None = None) -> None:
        self.state.status_text = text
        if progress is not None:
            self.state.progress = float(min(max(progress, 0.0), 100.0))
        logger.info(text)
        for listener in list(self._listeners):
            listener(text, self.state.progress)

    def _set_phase(self, phase: Phase) -> None:
        self.state.phase = phase
        logger.debug("Phase -> {}", phase.value)

    def _enter(self, action: str) -> bool:
        """Entry gate shared by every public operation."""
        if self.state.caching:
            self._report(f"Cannot {action} during caching.")
            return False
        return True

    # -- configuration --------------------------------------------------

    def set_candidates(self, candidates: list[AudioAsset]) -> None:
        self.candidates = list(candidates)
        for asset in self.candidates:
            self._assets[asset.path] = asset

    def configure(self, **changes) -> None:
        """Update options. Source mode, BPM or sample count changes clear the set."""
        for name, value in changes.items():
            if not hasattr(self.options, name):
                raise ConfigError(f"Unknown option: {name}")
            if name == "bpm":
                validate_bpm(value)
                value = float(value)
            elif name == "sample_count" and int(value) < 1:
                raise ConfigError(f"Sample count must be at least 1, got {value}")
            elif name == "subdivision" and value is not None:
                value = Subdivision.parse(value)
            elif name == "merge_mode":
                value = MergeMode.parse(value)
            elif name == "source_mode":
                value = SourceMode(value)
            setattr(self.options, name, value)
        if _INVALIDATING_OPTIONS & set(changes):
            self.invalidate()

    def invalidate(self) -> None:
        caching = self.state.caching
        self.state = SessionState(caching=caching)
        self._report("Slice set cleared.", 0)

    def set_caching(self, caching: bool) -> None:
        self.state.caching = bool(caching)
        self._set_phase(Phase.CACHING if caching else Phase.IDLE)

    def cancel(self) -> None:
        """Stop a running generate or reslice-all after the slice in progress."""
        self._cancel_requested = True

    def submit(self, coro) -> asyncio.Task:
        """Run `coro` as the single owned background task, cancelling any previous one."""
        if self._task is not None and not self._task.done():
            logger.debug("Cancelling running task in favour of a new one")
            self._task.cancel()
        self._task = asyncio.create_task(coro)
        return self._task

    # -- scratch --------------------------------------------------------

    def _new_generation_dir(self) -> str:
        self._generation += 1
        path = os.path.join(self.scratch_root, f"gen-{self._generation}")
        if os.path.exists(path):
            shutil.rmtree(path)
        os.makedirs(path)
        return path

    def _wipe_scratch(self) -> None:
        if not os.path.isdir(self.scratch_root):
            os.makedirs(self.scratch_root, exist_ok=True)
            return
        for name in os.listdir(self.scratch_root):
            if name.startswith("gen-"):
                shutil.rmtree(os.path.join(self.scratch_root, name), ignore_errors=True)

    def _work_dir(self) -> str:
        if self._gen_dir is None or not os.path.isdir(self._gen_dir):
            self._gen_dir = self._new_generation_dir()
        return self._gen_dir

    def _scratch_path(self, tag: str, index: int) -> str:
        self._serial += 1
        return os.path.join(
            self._work_dir(), f"{self.options.prefix}_{tag}_{index}_{self._serial}.wav"
        )

    # -- building blocks ------------------------------------------------

    def _asset(self, path: str) -> AudioAsset:
        asset = self._assets.get(path)
        if asset is None:
            asset = AudioAsset(path)
            self._assets[path] = asset
        return asset

    def _pool(self) -> list[AudioAsset]:
        manual = None
        if self.options.manual_source is not None:
            manual = self._asset(self.options.manual_source)
        return candidate_pool(
            self.options.source_mode,
            self.candidates,
            self.options.bpm,
            self.rng,
            manual=manual,
            registry=self.registry,
        )

    def _status(self, text: str) -> None:
        self._report(text)

    async def _export_new(
        self, pool: list[AudioAsset], subdivision: Subdivision, path: str
    ) -> SliceSpec | None:
        """Pick a source and start for a new slice and export it.

        Returns None when the slice has to be dropped.
        """
        opts = self.options
        asset = pool[int(self.rng.integers(len(pool)))]
        seconds = slice_seconds(opts.bpm, subdivision)
        try:
            start = await asyncio.to_thread(
                select_start,
                asset,
                opts.bpm,
                seconds,
                self.rng,
                opts.transient,
                self.settings.transient_preroll_ms,
            )
        except (DetectionRejected, DecodeError, ExhaustionError) as exc:
            logger.warning("No start found in {}: {}", asset.path, exc)
            return None
        written = await self.exporter.export_with_retries(
            asset, start, seconds, path, opts.effects, status=self._status
        )
        if written is None:
            return None
        return SliceSpec(
            asset_path=asset.path,
            start_frame=int(start * SAMPLE_RATE),
            frame_count=slice_frames(opts.bpm, subdivision),
            subdivision=subdivision,
        )

    async def _export_spec(self, spec: SliceSpec, path: str) -> str | None:
        """Re-export a slice from a stored spec."""
        return await self.exporter.export_with_retries(
            self._asset(spec.asset_path),
            spec.start_s,
            spec.duration_s,
            path,
            self.options.effects,
            status=self._status,
        )

    async def _merge(self, left: str, right: str, out_dir: str) -> str:
        path, applied = await asyncio.to_thread(
            merge_files, left, right, out_dir, self.options.merge_mode, self.rng
        )
        logger.debug("Layered slices with {}", applied.value)
        return path

    def _chain_members(self, index: int) -> list[int]:
        """Spec indices that make up chain slot `index`."""
        if self.options.layering:
            return [index, index + len(self.state.exported)]
        return [index]

    def _check_index(self, index: int) -> bool:
        if not 0 <= index < self.state.slice_count:
            self._report(f"Invalid slice index {index}.")
            return False
        return True

    async def _rerender(self, index: int, specs: list[SliceSpec], tag: str) -> bool:
        """Export `specs` for chain slot `index` and swap them in on success."""
        paths = []
        for member, spec in zip(self._chain_members(index), specs):
            try:
                path = await self._export_spec(spec, self._scratch_path(tag, member))
            except RangeError as exc:
                logger.warning("Slice {} no longer fits its source: {}", index + 1, exc)
                path = None
            if path is None:
                self._report(f"Failed to {tag} slice {index + 1}; keeping the previous slice.")
                return False
            paths.append(path)
        return await self._install(index, specs, paths)

    async def _install(self, index: int, specs: list[SliceSpec], paths: list[str]) -> bool:
        """Put freshly exported slices into chain slot `index`, layering if needed."""
        members = self._chain_members(index)
        if self.options.layering:
            self._set_phase(Phase.MERGING)
            try:
                merged = await self._merge(paths[0], paths[1], self._work_dir())
            except DecodeError as exc:
                self._report(f"Failed to layer slice {index + 1}: {exc}")
                return False
            for member, spec, path in zip(members, specs, paths):
                self.state.specs[member] = spec
                self.state.layer_exports[member] = path
            self.state.exported[index] = merged
        else:
            self.state.specs[index] = specs[0]
            self.state.exported[index] = paths[0]
        self.state.stutter_undo.pop(index, None)
        return True

    async def _assemble(self) -> str | None:
        if not self.state.exported:
            self.state.chain_path = None
            return None
        self._set_phase(Phase.ASSEMBLING)
        out_path = os.path.join(self._work_dir(), CHAIN_NAME)
        try:
            self.state.chain_path = await asyncio.to_thread(
                write_chain, list(self.state.exported), out_path
            )
        except ChainError as exc:
            self.state.chain_path = None
            self._report(f"Failed to assemble chain: {exc}")
        finally:
            self._set_phase(Phase.IDLE)
        return self.state.chain_path

    # -- operations -----------------------------------------------------

    def _collect(
        self, results: list[tuple[SliceSpec, str] | None], count: int
    ) -> SessionState:
        """Turn per-slot generate results into a fresh session state."""
        state = SessionState(caching=self.state.caching, status_text=self.state.status_text)
        if self.options.layering:
            results = results + [None] * (2 * count - len(results))
            firsts, seconds = [], []
            for left, right in zip(results[:count], results[count:]):
                if left is None or right is None:
                    continue
                try:
                    merged, applied = merge_files(
                        left[1], right[1], self._gen_dir, self.options.merge_mode, self.rng
                    )
                except DecodeError as exc:
                    logger.warning("Dropping layered pair: {}", exc)
                    continue
                logger.debug("Layered slices with {}", applied.value)
                firsts.append(left)
                seconds.append(right)
                state.exported.append(merged)
            pairs = firsts + seconds
            state.specs = [spec for spec, _ in pairs]
            state.layer_exports = [path for _, path in pairs]
        else:
            kept = [r for r in results if r is not None]
            state.specs = [spec for spec, _ in kept]
            state.exported = [path for _, path in kept]
        state.volumes = [VolumeSetting() for _ in state.exported]
        state.selected_index = 0 if state.exported else None
        return state

    def _keep_partial(self, results: list[tuple[SliceSpec, str] | None], count: int) -> None:
        """Install the slices a cancelled generate finished, without awaiting."""
        if self.options.layering:
            self._set_phase(Phase.MERGING)
        self.state = self._collect(results, count)
        self.state.chain_path = None
        if self.state.exported:
            self._set_phase(Phase.ASSEMBLING)
            try:
                self.state.chain_path = write_chain(
                    list(self.state.exported), os.path.join(self._gen_dir, CHAIN_NAME)
                )
            except ChainError as exc:
                self._report(f"Failed to assemble chain: {exc}")
        self._set_phase(Phase.IDLE)
        self._report(f"Generation cancelled; kept {self.state.slice_count} slices.")

    async def generate(self) -> bool:
        """Build a fresh slice set of `sample_count` slices (pairs when layering)."""
        if not self._enter("generate"):
            return False
        opts = self.options
        self._cancel_requested = False
        try:
            pool = self._pool()
        except (ExhaustionError, ConfigError) as exc:
            self._report(f"Cannot generate: {exc}", 0)
            return False

        count = opts.sample_count
        subdivisions = choose_subdivisions(count, opts.subdivision, self.rng, opts.layering)
        total = len(subdivisions)

        self._wipe_scratch()
        self._gen_dir = self._new_generation_dir()
        self._set_phase(Phase.GENERATING)
        self._report("Generating preview snippets...", 0)

        results: list[tuple[SliceSpec, str] | None] = []
        try:
            for i, subdivision in enumerate(subdivisions):
                if self.state.caching:
                    self._report("Cannot generate during caching.")
                    break
                if self._cancel_requested:
                    self._report("Generation cancelled.")
                    break
                self._set_phase(Phase.EXPORTING)
                path = os.path.join(self._gen_dir, f"{opts.prefix}_{i}.wav")
                spec = await self._export_new(pool, subdivision, path)
                if spec is None:
                    self._report(f"Dropped slice {i + 1} of {total}.")
                    results.append(None)
                else:
                    results.append((spec, path))
                await asyncio.sleep(self.settings.export_throttle)
                self._report(
                    f"Generating preview snippet {i + 1} of {total}...", (i + 1) / total * 100
                )
        except asyncio.CancelledError:
            self._keep_partial(results, count)
            raise
        finally:
            self._cancel_requested = False
        results.extend([None] * (total - len(results)))

        if opts.layering:
            self._set_phase(Phase.MERGING)
        state = self._collect(results, count)
        self.state = state
        self._set_phase(Phase.IDLE)
        if opts.pachinko_stutter and state.exported:
            await self._pachinko_stutter()
        else:
            await self._assemble()
        if not state.exported:
            self._report("No slices could be generated.", 100)
            return False
        self._report("Preview generated.", 100)
        return True

    async def reslice(self, index: int) -> bool:
        """Pick a new start (and source) for one slice."""
        if not self._enter("reslice") or not self._check_index(index):
            return False
        if not await self._reslice_one(index):
            return False
        await self._assemble()
        self._report(f"Resliced slice {index + 1}.")
        return True

    async def reslice_all(self) -> bool:
        if not self._enter("reslice") or not self.state.exported:
            return False
        self._cancel_requested = False
        ok, cancelled = True, False
        try:
            for index in range(self.state.slice_count):
                if self._cancel_requested:
                    cancelled = True
                    break
                ok = await self._reslice_one(index) and ok
        finally:
            self._cancel_requested = False
        await self._assemble()
        if cancelled:
            self._report("Reslice cancelled.")
            return False
        self._report("Resliced all slices." if ok else "Some slices could not be resliced.")
        return ok

    async def _reslice_one(self, index: int) -> bool:
        opts = self.options
        try:
            pool = self._pool()
        except (ExhaustionError, ConfigError) as exc:
            self._report(f"Cannot reslice: {exc}")
            return False
        members = self._chain_members(index)
        if opts.layering:
            subdivision = self.state.specs[index].subdivision
        else:
            subdivision = opts.subdivision or random_subdivision(self.rng)

        specs, paths = [], []
        for member in members:
            path = self._scratch_path("reslice", member)
            spec = await self._export_new(pool, subdivision, path)
            if spec is None:
                self._report(f"Failed to reslice slice {index + 1}; keeping the previous slice.")
                return False
            specs.append(spec)
            paths.append(path)
        return await self._install(index, specs, paths)

    async def regenerate(self, index: int) -> bool:
        """Re-export one slice from its stored start and length."""
        if not self._enter("regenerate") or not self._check_index(index):
            return False
        specs = [self.state.specs[m] for m in self._chain_members(index)]
        if not await self._rerender(index, specs, "regen"):
            return False
        await self._assemble()
        self._report(f"Regenerated slice {index + 1}.")
        return True

    async def regenerate_all(self, reroll: bool | None = None) -> bool:
        """Re-export every slice; all-or-nothing.

        Args:
            reroll: Draw a new subdivision per slice. Defaults to whether
                random-subdivision mode is active.

        On any failure the new files are discarded and the previous slices
        and chain stay untouched.
        """
        if not self._enter("regenerate") or not self.state.specs:
            return False
        opts = self.options
        if reroll is None:
            reroll = opts.subdivision is None

        specs = list(self.state.specs)
        if reroll:
            half = len(specs) // 2 if opts.layering else len(specs)
            draws = [random_subdivision(self.rng) for _ in range(half)]
            if opts.layering:
                draws = draws + draws
            specs = [
                replace(spec, subdivision=sub, frame_count=slice_frames(opts.bpm, sub))
                for spec, sub in zip(specs, draws)
            ]

        new_dir = self._new_generation_dir()
        self._set_phase(Phase.EXPORTING)
        paths = []
        for i, spec in enumerate(specs):
            path = os.path.join(new_dir, f"{opts.prefix}_regen_{i}.wav")
            try:
                written = await self._export_spec(spec, path)
            except RangeError as exc:
                logger.warning("Slice {} no longer fits its source: {}", i + 1, exc)
                written = None
            if written is None:
                shutil.rmtree(new_dir, ignore_errors=True)
                self._set_phase(Phase.IDLE)
                self._report("Regeneration failed; previous slices kept.")
                return False
            paths.append(path)
            self._report(f"Regenerating slice {i + 1} of {len(specs)}...", (i + 1) / len(specs) * 100)

        if opts.layering:
            self._set_phase(Phase.MERGING)
            n = len(specs) // 2
            exported = []
            for left, right in zip(paths[:n], paths[n:]):
                try:
                    exported.append(await self._merge(left, right, new_dir))
                except DecodeError as exc:
                    shutil.rmtree(new_dir, ignore_errors=True)
                    self._set_phase(Phase.IDLE)
                    self._report(f"Regeneration failed; previous slices kept. ({exc})")
                    return False
            layer_exports = paths
        else:
            exported = paths
            layer_exports = []

        old_dir = self._gen_dir
        self._gen_dir = new_dir
        self.state.specs = specs
        self.state.exported = exported
        self.state.layer_exports = layer_exports
        self.state.stutter_undo.clear()
        if len(self.state.volumes) != len(exported):
            self.state.volumes = [VolumeSetting() for _ in exported]
        if old_dir is not None and old_dir != new_dir:
            shutil.rmtree(old_dir, ignore_errors=True)
        await self._assemble()
        self._report("Preview regenerated.", 100)
        return True

    async def restore(self, slice_set: SliceSet) -> bool:
        """Rebuild slices from a saved SliceSet."""
        if not self._enter("restore"):
            return False
        self.options.bpm = float(slice_set.bpm)
        self.options.layering = bool(slice_set.layering)
        count = len(slice_set.specs) // 2 if slice_set.layering else len(slice_set.specs)
        self.state.specs = list(slice_set.specs)
        self.state.volumes = [VolumeSetting() for _ in range(count)]
        return await self.regenerate_all(reroll=False)

    def slice_set(self) -> SliceSet:
        return SliceSet(
            specs=list(self.state.specs),
            bpm=self.options.bpm,
            layering=self.options.layering,
        )

    async def shuffle(self) -> bool:
        """Reorder slices, keeping spec, file and volume together."""
        if not self._enter("shuffle") or not self.state.exported:
            return False
        state = self.state
        n = state.slice_count
        selected = None
        if state.selected_index is not None and state.selected_index < n:
            selected = state.specs[state.selected_index].identity()

        order = [int(i) for i in self.rng.permutation(n)]
        if self.options.layering:
            state.specs = [state.specs[i] for i in order] + [state.specs[n + i] for i in order]
            state.layer_exports = (
                [state.layer_exports[i] for i in order]
                + [state.layer_exports[n + i] for i in order]
            )
        else:
            state.specs = [state.specs[i] for i in order]
        state.exported = [state.exported[i] for i in order]
        state.volumes = [state.volumes[i] for i in order]
        state.stutter_undo = {
            new: state.stutter_undo[old] for new, old in enumerate(order) if old in state.stutter_undo
        }

        state.selected_index = 0
        if selected is not None:
            for i in range(n):
                if state.specs[i].identity() == selected:
                    state.selected_index = i
                    break
        await self._assemble()
        self._report("Slices shuffled.")
        return True

    async def start_select(self, index: int, fraction: float) -> bool:
        """Move a slice's start forward by `fraction` of its length."""
        if not self._enter("move the slice start") or not self._check_index(index):
            return False
        fraction = min(max(float(fraction), 0.0), 1.0)
        specs = []
        for member in self._chain_members(index):
            spec = self.state.specs[member]
            total = int(self._asset(spec.asset_path).duration * SAMPLE_RATE)
            new_start = spec.start_frame + int(round(fraction * spec.frame_count))
            specs.append(spec.with_start(min(new_start, max(0, total - spec.frame_count))))
        if not await self._rerender(index, specs, "startselect"):
            return False
        await self._assemble()
        self._report(f"Moved start of slice {index + 1}.")
        return True

    def select(self, index: int | None) -> None:
        self.state.selected_index = index

    def copy_selected(self) -> bool:
        if not self._enter("copy"):
            return False
        index = self.state.selected_index
        if index is None or not self._check_index(index):
            return False
        specs = [self.state.specs[m] for m in self._chain_members(index)]
        volume = replace(self.state.volumes[index])
        self.state.clipboard = (specs, volume)
        self._report(f"Copied slice {index + 1}.")
        return True

    async def paste_to_selected(self) -> bool:
        """Replace the selected slice with the copied one, re-rendered."""
        if not self._enter("paste"):
            return False
        index = self.state.selected_index
        if self.state.clipboard is None or index is None or not self._check_index(index):
            return False
        specs, volume = self.state.clipboard
        if len(specs) != len(self._chain_members(index)):
            self._report("Copied slice does not match the current layering mode.")
            return False
        if not await self._rerender(index, list(specs), "paste"):
            return False
        self.state.volumes[index] = replace(volume)
        await self._assemble()
        self._report(f"Pasted into slice {index + 1}.")
        return True

    # -- stutter --------------------------------------------------------

    async def _stutter(self, index: int, fraction: float, config: StutterConfig) -> bool:
        previous = self.state.exported[index]
        try:
            path = await asyncio.to_thread(
                stutter_file,
                previous,
                config,
                fraction,
                self._work_dir(),
                self.options.prefix,
                False,
                self.settings.stutter_fade_ms,
            )
        except StutterError as exc:
            self._report(f"Error applying stutter: {exc}")
            return False
        self.state.stutter_undo[index] = previous
        self.state.exported[index] = path
        return True

    async def apply_stutter(
        self, index: int, fraction: float, config: StutterConfig | None = None
    ) -> bool:
        if not self._enter("stutter") or not self._check_index(index):
            return False
        config = config or self.options.stutter
        if not await self._stutter(index, fraction, config):
            return False
        await self._assemble()
        self._report(f"Stutter effect applied with {config.count} slices.")
        return True

    async def preview_stutter(
        self, index: int, fraction: float, config: StutterConfig | None = None
    ) -> str | None:
        """Render a stutter preview file without changing the slice set."""
        if not self._enter("preview stutter") or not self._check_index(index):
            return None
        try:
            return await asyncio.to_thread(
                stutter_file,
                self.state.exported[index],
                config or self.options.stutter,
                fraction,
                self._work_dir(),
                self.options.prefix,
                True,
                self.settings.stutter_fade_ms,
            )
        except StutterError as exc:
            self._report(f"Error previewing stutter: {exc}")
            return None

    async def undo_stutter(self, index: int) -> bool:
        if not self._enter("undo stutter"):
            return False
        previous = self.state.stutter_undo.pop(index, None)
        if previous is None or not self._check_index(index):
            self._report("Nothing to undo.")
            return False
        self.state.exported[index] = previous
        await self._assemble()
        self._report(f"Stutter undone on slice {index + 1}.")
        return True

    def discard_stutter_undo(self, index: int | None = None) -> None:
        if index is None:
            self.state.stutter_undo.clear()
        else:
            self.state.stutter_undo.pop(index, None)

    async def _pachinko_stutter(self) -> int:
        applied = 0
        for index in range(self.state.slice_count):
            if self.rng.random() < 0.5:
                config = random_stutter_config(self.rng)
                if await self._stutter(index, float(self.rng.uniform(0.0, 1.0)), config):
                    applied += 1
        await self._assemble()
        return applied

    async def apply_pachinko_stutter(self) -> bool:
        """Stutter a random subset of slices with random settings."""
        if not self._enter("stutter") or not self.state.exported:
            return False
        applied = await self._pachinko_stutter()
        self._report(f"Pachinko stutter applied to {applied} slices.")
        return True

    # -- volume & export ------------------------------------------------

    def set_volume(self, index: int, volume: float | None = None, muted: bool | None = None) -> bool:
        if not self._enter("change the volume") or not self._check_index(index):
            return False
        setting = self.state.volumes[index]
        if volume is not None:
            setting.volume = min(max(float(volume), 0.0), 1.0)
        if muted is not None:
            setting.muted = bool(muted)
        return True

    async def rebuild_chain(self) -> str | None:
        if not self._enter("rebuild the chain"):
            return None
        return await self._assemble()

    async def rebuild_loop_chain(self) -> str | None:
        """Volume-adjusted chain for looping playback."""
        if not self._enter("rebuild the loop chain") or not self.state.exported:
            return None
        out_path = os.path.join(self._work_dir(), LOOP_CHAIN_NAME)
        try:
            self.state.loop_chain_path = await asyncio.to_thread(
                write_loop_chain, list(self.state.exported), list(self.state.volumes), out_path
            )
        except ChainError as exc:
            self._report(f"Failed to assemble loop chain: {exc}")
            return None
        return self.state.loop_chain_path

    async def export_deliverables(
        self,
        dest: str,
        prefix: str | None = None,
        individual: bool = True,
        chain: bool = True,
        with_volume: bool = False,
    ) -> list[str]:
        """Copy slices and/or the chain to `dest` with collision-free numbering."""
        if not self._enter("export") or not self.state.exported:
            return []
        prefix = prefix or self.settings.default_prefix
        volumes = list(self.state.volumes) if with_volume else None
        written = []
        if individual:
            written += await asyncio.to_thread(
                export_individual_slices, list(self.state.exported), dest, prefix, volumes
            )
        if chain:
            written.append(
                await asyncio.to_thread(
                    export_chain,
                    list(self.state.exported),
                    dest,
                    prefix,
                    volumes,
                    self.state.chain_path,
                )
            )
        self._report(f"Exported {len(written)} files to {dest}.")
        return written
