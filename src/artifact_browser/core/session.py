"""Browsing session: the single owner of mutable browsing state.

A BrowserSession holds the original segmentation, the segment planner (with
its trial lock), the annotation store, the cursor and the display settings.
UI collaborators send commands to ``dispatch`` and read immutable snapshots;
every command runs to completion before the next one is accepted.
"""
from __future__ import annotations

import math
from typing import Any, Callable, Iterable, Mapping, Sequence

import attrs
import numpy as np
from loguru import logger

from artifact_browser import commands as cmd
from artifact_browser.config.settings import BrowserConfig, ConfigManager, PreprocConfig
from artifact_browser.core.annotations import AnnotationStore
from artifact_browser.core.data_models import (
    CommandResult,
    ConfigurationError,
    Event,
    PlanResult,
    Segment,
    SelectionDataScope,
    SelectMode,
    Snapshot,
    Status,
    ViewMode,
    ViewType,
    YLimPolicy,
)
from artifact_browser.core.data_source import DataSource, representative_block
from artifact_browser.core.navigation import find_next, find_previous
from artifact_browser.core.scaling import VERTICAL_ZOOM, estimate_limits, parse_ylim
from artifact_browser.core.segmentation import SegmentPlanner
from artifact_browser.core.selection import AnalysisLookup, Selection, SelectionResolver

FilterFn = Callable[[np.ndarray, Sequence[str], np.ndarray, Any], tuple[np.ndarray, Sequence[str], np.ndarray]]
LayoutFn = Callable[[Sequence[str]], Any]

ZOOM_FACTOR = math.sqrt(2)
DEFAULT_ARTIFACT_TYPE = "visual"


def _resolve_channels(all_labels: list[str], selected: Sequence[str] | None, clamped: Sequence[str]) -> tuple[list[int], list[int]]:
    """Header indices of the pageable channels shown and of the clamped channels.

    Raises:
        ConfigurationError: If a label is unknown or nothing would be shown
    """
    unknown = [lab for lab in list(selected or []) + list(clamped) if lab not in all_labels]
    if unknown:
        raise ConfigurationError(f"unknown channel(s): {unknown}")

    clamped_idx = [all_labels.index(lab) for lab in dict.fromkeys(clamped)]
    pool = [i for i in range(len(all_labels)) if i not in clamped_idx]
    if selected is None:
        shown = pool
    else:
        wanted = {all_labels.index(lab) for lab in selected}
        shown = [i for i in pool if i in wanted]

    if not shown and not clamped_idx:
        raise ConfigurationError("no channels selected")
    return shown, clamped_idx


class BrowserSession:
    """Segment browsing and annotation over one data source.

    Example:
        >>> source = InMemoryData.from_trials([data], 500.0, ["Fz", "Cz"])
        >>> session = BrowserSession(source)
        >>> session.dispatch(ZoomIn())
        >>> snap = session.snapshot()
        >>> session.artifact_definitions()
        {'visual': []}
    """

    def __init__(
        self,
        source: DataSource,
        config: BrowserConfig | ConfigManager | None = None,
        *,
        artifacts: Mapping[str, Iterable[tuple[int, int]]] | None = None,
        trials: Sequence[Segment] | None = None,
        filter_fn: FilterFn | None = None,
        analysis_lookup: AnalysisLookup | None = None,
        layout_fn: LayoutFn | None = None,
    ):
        """Set up a session; nothing is mutable until every input checks out.

        Args:
            source: Sample source with header and events
            config: Browser configuration, or a ConfigManager to read it from;
                defaults to BrowserConfig.default()
            artifacts: Initial artifact definitions ``{label: [(begin, end), ...]}``;
                defaults to one empty 'visual' type
            trials: Original segmentation, defaults to the source's trial definition
            filter_fn: Display filter, defaults to processing.preprocess
            analysis_lookup: Name -> analysis function, defaults to processing.get_analysis
            layout_fn: Channel placement passed through to snapshots

        Raises:
            ConfigurationError: On empty channel selection, zero trials or
                malformed vertical limits
        """
        if isinstance(config, ConfigManager):
            config = config.get_config()
        config = config if config is not None else BrowserConfig.default()
        header = source.header
        display = config.display

        labels = list(header.labels)
        try:
            if not labels:
                raise ConfigurationError("the data has no channels")
            shown, clamped = _resolve_channels(labels, display.channel, display.channel_clamped)
            ylim_spec = parse_ylim(display.ylim)

            if display.continuous is None:
                continuous = header.n_trials == 1 if trials is None else len(trials) == 1
            else:
                continuous = display.continuous
            original = list(trials) if trials is not None else source.trial_definition(continuous)
            if not original:
                raise ConfigurationError("no trials to display")
            planner = SegmentPlanner(original, header.sampling_rate, continuous=continuous)
        except ConfigurationError as e:
            logger.error(f"Cannot set up browsing session: {e}")
            raise

        if display.window_duration is not None:
            window = float(display.window_duration)
        elif continuous:
            window = 1.0
        else:
            window = original[0].duration(header.sampling_rate)

        events: list[Event] = list(source.events)
        if header.resampled and events:
            logger.warning("Data has been resampled, events are not shown and cannot be edited")
            events = []

        definitions = dict(artifacts) if artifacts else {DEFAULT_ARTIFACT_TYPE: []}
        store = AnnotationStore.from_definitions(definitions, planner.max_end + 1, events)

        if filter_fn is None or analysis_lookup is None:
            from artifact_browser.processing import get_analysis, preprocess

            filter_fn = filter_fn or preprocess
            analysis_lookup = analysis_lookup or get_analysis

        self.source = source
        self.config = config
        self.sampling_rate = header.sampling_rate
        self.labels = labels
        self.continuous = continuous
        self.planner = planner
        self.store = store
        self.resolver = SelectionResolver(store, header.sampling_rate, analysis_lookup)
        self.filter_fn = filter_fn
        self.layout_fn = layout_fn

        self.shown_channels = shown
        self.clamped_channels = clamped
        self.channel_scale: dict[str, float] = dict(display.channel_scale)
        self.view_mode = ViewMode(display.view_mode)
        self.select_mode = SelectMode(config.selection.select_mode)
        self.data_scope = SelectionDataScope(config.selection.seldat)
        self.preproc: PreprocConfig = attrs.evolve(config.preproc)
        self.active_type = 0
        self.cursor = 0

        self.plan_result: PlanResult = self.planner.plan(window, cursor=0)
        self.cursor = self.plan_result.cursor

        if isinstance(ylim_spec, YLimPolicy):
            block = representative_block(source, self.channel_indices)
            self.ylim = self._auto_limits(block, ylim_spec)
        else:
            self.ylim = ylim_spec

        logger.info(
            f"Browsing {len(original)} {'continuous segment' if continuous else 'trial'}(s), "
            f"{len(self.channel_indices)}/{len(labels)} channel(s), window {self.plan_result.window_duration:g} s"
        )

    # ------------------------------------------------------------------ state

    @property
    def channel_indices(self) -> list[int]:
        """Header indices of the displayed channels, clamped channels last."""
        return self.shown_channels + [i for i in self.clamped_channels if i not in self.shown_channels]

    @property
    def channel_labels(self) -> list[str]:
        return [self.labels[i] for i in self.channel_indices]

    @property
    def segments(self) -> tuple[Segment, ...]:
        return self.plan_result.segments

    @property
    def current_segment(self) -> Segment:
        return self.plan_result.segments[self.cursor]

    @property
    def view_type(self) -> ViewType:
        return self.plan_result.view_type

    @property
    def window_duration(self) -> float:
        return self.plan_result.window_duration

    @property
    def events(self) -> list[Event]:
        """Event list result (sorted by sample unless an anomaly was reported)."""
        return self.store.events.to_list()

    def artifact_definitions(self) -> dict[str, list[tuple[int, int]]]:
        """Artifact result: interval form of every artifact type."""
        return self.store.artifact_definitions()

    def offered_analyses(self) -> list[str]:
        """Configured analyses the lookup can resolve, in configured order."""
        offered = []
        for name in self.config.selection.analyses:
            try:
                self.resolver.analysis_lookup(name)
            except KeyError:
                logger.warning(f"Configured analysis is not registered: {name}")
                continue
            offered.append(name)
        return offered

    def title(self) -> str:
        """Human-readable position, e.g. 'trial 2/10' or 'trial 1/3: segment: 2/5'."""
        n = len(self.segments)
        if self.view_type is ViewType.TRIAL:
            return f"trial {self.cursor + 1}/{n}"
        if self.view_type is ViewType.SEGMENT:
            return f"segment {self.cursor + 1}/{n}"
        if self.view_type is ViewType.TRIAL_SEGMENT:
            n_trials = len(self.planner.original)
            return f"trial {self.planner.lock + 1}/{n_trials}: segment: {self.cursor + 1}/{n}"
        raise ValueError(f"Unknown view type: {self.view_type}")

    # ---------------------------------------------------------------- display

    def _auto_limits(self, data: np.ndarray, policy: YLimPolicy) -> tuple[float, float]:
        ymin, ymax = estimate_limits(data, policy)
        if self.view_mode is ViewMode.VERTICAL:
            ymin, ymax = ymin / VERTICAL_ZOOM, ymax / VERTICAL_ZOOM
        return ymin, ymax

    def _preproc_options(self) -> dict[str, Any]:
        options = attrs.asdict(self.preproc)
        options["sampling_rate"] = self.sampling_rate
        return options

    def displayed_data(self, segment: Segment | None = None) -> tuple[np.ndarray, list[str], np.ndarray]:
        """Preprocessed, per-channel scaled samples of a segment, without padding.

        Returns:
            Tuple of (samples, labels, time)
        """
        segment = segment or self.current_segment
        raw = self.source.fetch(segment.begin, segment.end, self.channel_indices)
        time = segment.time_axis(self.sampling_rate)

        samples, labels, time = self.filter_fn(raw, self.channel_labels, time, self._preproc_options())
        samples = np.array(samples, dtype=float)
        labels = list(labels)
        for row, label in enumerate(labels):
            gain = self.channel_scale.get(label)
            if gain is not None:
                samples[row] *= gain
        return samples, labels, np.asarray(time)

    def x_limits(self) -> tuple[float, float]:
        """Times of the first and last displayed sample, padding included."""
        segment = self.current_segment
        n = segment.length + self.plan_result.pad_lengths[self.cursor]
        time = segment.time_axis(self.sampling_rate, n)
        return float(time[0]), float(time[-1])

    def snapshot(self) -> Snapshot:
        """Fully resolved state of the current segment for a renderer."""
        segment = self.current_segment
        pad = self.plan_result.pad_lengths[self.cursor]

        samples, labels, _ = self.displayed_data(segment)
        if pad > 0:
            samples = np.concatenate((samples, np.full((samples.shape[0], pad), np.nan)), axis=1)
        time = segment.time_axis(self.sampling_rate, segment.length + pad)

        if self.config.display.plot_events:
            events = tuple(self.store.events.in_range(segment.begin, segment.end))
        else:
            events = ()

        return Snapshot(
            segment=segment,
            segment_index=self.cursor,
            n_segments=len(self.segments),
            view_type=self.view_type,
            samples=samples,
            time=time,
            labels=tuple(labels),
            annotation_rows=self.store.fetch_annotations(segment.begin, segment.end + pad),
            annotation_labels=tuple(self.store.labels),
            active_type=self.active_type,
            events_in_range=events,
            y_limits=self.ylim,
            x_limits=self.x_limits(),
            pad_length=pad,
            select_mode=self.select_mode,
            view_mode=self.view_mode,
            title=self.title(),
            layout=None if self.layout_fn is None else self.layout_fn(tuple(labels)),
        )

    # --------------------------------------------------------------- commands

    def dispatch(self, command: Any) -> CommandResult:
        """Process one command to completion.

        Raises:
            TypeError: If the command type is not known
        """
        handlers: dict[type, Callable[[Any], CommandResult]] = {
            cmd.NextSegment: self._next_segment,
            cmd.PreviousSegment: self._previous_segment,
            cmd.GotoSegment: self._goto_segment,
            cmd.ZoomIn: self._zoom_in,
            cmd.ZoomOut: self._zoom_out,
            cmd.SetWindow: self._set_window,
            cmd.ScaleUp: self._scale_up,
            cmd.ScaleDown: self._scale_down,
            cmd.SetYLim: self._set_ylim,
            cmd.SelectArtifactType: self._select_artifact_type,
            cmd.FindPrevious: self._find_previous,
            cmd.FindNext: self._find_next,
            cmd.CycleSelectMode: self._cycle_select_mode,
            cmd.SetSelectMode: self._set_select_mode,
            cmd.Select: self._select,
            cmd.ChannelsUp: self._channels_up,
            cmd.ChannelsDown: self._channels_down,
            cmd.SelectChannels: self._select_channels,
            cmd.SetPreproc: self._set_preproc,
        }
        handler = handlers.get(type(command))
        if handler is None:
            raise TypeError(f"Unknown command: {command!r}")
        result = handler(command)
        logger.debug(f"{type(command).__name__}: {result.status.value} {result.message}")
        return result

    def _warn(self, message: str, status: Status = Status.WARNING) -> CommandResult:
        logger.warning(message)
        return CommandResult(status=status, message=message)

    # navigation

    def _move_to(self, index: int) -> CommandResult:
        self.cursor = index
        message = f"showing {self.title()}"
        logger.info(message)
        return CommandResult(status=Status.OK, message=message, payload=index)

    def _next_segment(self, command: cmd.NextSegment) -> CommandResult:
        if self.cursor >= len(self.segments) - 1:
            return self._warn(f"already at the last {self.view_type.value}")
        return self._move_to(self.cursor + 1)

    def _previous_segment(self, command: cmd.PreviousSegment) -> CommandResult:
        if self.cursor <= 0:
            return self._warn(f"already at the first {self.view_type.value}")
        return self._move_to(self.cursor - 1)

    def _goto_segment(self, command: cmd.GotoSegment) -> CommandResult:
        n = len(self.segments)
        index = min(max(int(command.index), 0), n - 1)
        result = self._move_to(index)
        if index != command.index:
            return self._warn(f"{self.view_type.value} {command.index + 1} does not exist, showing {self.title()}")
        return result

    # zoom

    def _replan(self, window: float) -> CommandResult:
        self.plan_result = self.planner.plan(window, cursor=self.cursor)
        self.cursor = self.plan_result.cursor
        message = f"window {self.window_duration:g} s, showing {self.title()}"
        if self.plan_result.warning:
            return CommandResult(status=Status.WARNING, message=self.plan_result.warning, payload=self.plan_result)
        logger.info(message)
        return CommandResult(status=Status.OK, message=message, payload=self.plan_result)

    def _zoom_in(self, command: cmd.ZoomIn) -> CommandResult:
        return self._replan(self.window_duration / ZOOM_FACTOR)

    def _zoom_out(self, command: cmd.ZoomOut) -> CommandResult:
        return self._replan(self.window_duration * ZOOM_FACTOR)

    def _set_window(self, command: cmd.SetWindow) -> CommandResult:
        if not command.duration > 0:
            return self._warn(f"window duration must be positive, got {command.duration}")
        return self._replan(float(command.duration))

    # vertical scaling

    def _set_limits(self, limits: tuple[float, float]) -> CommandResult:
        self.ylim = (float(limits[0]), float(limits[1]))
        message = f"vertical limits [{self.ylim[0]:g}, {self.ylim[1]:g}]"
        logger.info(message)
        return CommandResult(status=Status.OK, message=message, payload=self.ylim)

    def _scale_up(self, command: cmd.ScaleUp) -> CommandResult:
        return self._set_limits((self.ylim[0] / ZOOM_FACTOR, self.ylim[1] / ZOOM_FACTOR))

    def _scale_down(self, command: cmd.ScaleDown) -> CommandResult:
        return self._set_limits((self.ylim[0] * ZOOM_FACTOR, self.ylim[1] * ZOOM_FACTOR))

    def _set_ylim(self, command: cmd.SetYLim) -> CommandResult:
        try:
            spec = parse_ylim(command.spec)
        except ConfigurationError as exc:
            return self._warn(f"{exc}, keeping the current vertical limits")
        if isinstance(spec, YLimPolicy):
            samples, _, _ = self.displayed_data()
            return self._set_limits(self._auto_limits(samples, spec))
        return self._set_limits(spec)

    # annotation types and search

    def _select_artifact_type(self, command: cmd.SelectArtifactType) -> CommandResult:
        try:
            row = self.store.row_of(command.artifact_type)
        except KeyError:
            return self._warn(f"there is no artifact type {command.artifact_type!r}")
        self.active_type = row
        message = f"active artifact type: {self.store.labels[row]}"
        logger.info(message)
        return CommandResult(status=Status.OK, message=message, payload=row)

    def _find(self, finder: Callable, direction: str) -> CommandResult:
        label = self.store.labels[self.active_type]
        index = finder(self.store.channels[self.active_type], self.segments, self.cursor)
        if index is None:
            message = f"no {direction} {label} artifact found"
            logger.info(message)
            return CommandResult(status=Status.NOT_FOUND, message=message)
        return self._move_to(index)

    def _find_previous(self, command: cmd.FindPrevious) -> CommandResult:
        return self._find(find_previous, "earlier")

    def _find_next(self, command: cmd.FindNext) -> CommandResult:
        return self._find(find_next, "later")

    # selection

    def _cycle_select_mode(self, command: cmd.CycleSelectMode) -> CommandResult:
        self.select_mode = self.select_mode.next()
        message = f"select mode: {self.select_mode.value}"
        logger.info(message)
        return CommandResult(status=Status.OK, message=message, payload=self.select_mode)

    def _set_select_mode(self, command: cmd.SetSelectMode) -> CommandResult:
        try:
            self.select_mode = SelectMode(command.mode)
        except ValueError:
            return self._warn(f"unknown select mode {command.mode!r}")
        message = f"select mode: {self.select_mode.value}"
        logger.info(message)
        return CommandResult(status=Status.OK, message=message, payload=self.select_mode)

    def _analysis_source(self, segment: Segment, displayed: np.ndarray, labels: list[str]):
        if self.data_scope is SelectionDataScope.CURRENT:
            def source(begin: int, end: int):
                return displayed[:, begin - segment.begin:end - segment.begin + 1], tuple(labels)
        else:
            def source(begin: int, end: int):
                return self.source.fetch(begin, end, list(range(len(self.labels)))), tuple(self.labels)
        return source

    def _select(self, command: cmd.Select) -> CommandResult:
        segment = self.current_segment
        hlim = command.hlim if command.hlim is not None else self.x_limits()
        displayed, labels, _ = self.displayed_data(segment)

        analysis_config = None
        if command.analysis is not None:
            analysis_config = self.config.selection.analysis_config.get(command.analysis, {})
            try:
                self.resolver.analysis_lookup(command.analysis)
            except KeyError as exc:
                return self._warn(exc.args[0])

        outcome = self.resolver.apply(
            Selection(command.start, command.stop),
            segment=segment,
            hlim=hlim,
            mode=self.select_mode,
            active_type=self.active_type,
            displayed=displayed,
            analysis=command.analysis,
            analysis_source=self._analysis_source(segment, displayed, labels),
            analysis_config=analysis_config,
            title=self.title(),
        )
        return CommandResult(status=outcome.status, message=outcome.message, payload=outcome)

    # channels

    def _pool(self) -> list[int]:
        return [i for i in range(len(self.labels)) if i not in self.clamped_channels]

    def _page(self, step: int) -> CommandResult:
        pool = self._pool()
        n = len(self.shown_channels)
        if n == 0 or n >= len(pool):
            return self._warn("all channels are already displayed")

        positions = [pool.index(i) + step * n for i in self.shown_channels]
        if positions[0] < 0:
            positions = list(range(n))
        elif positions[-1] > len(pool) - 1:
            positions = list(range(len(pool) - n, len(pool)))
        self.shown_channels = [pool[p] for p in positions]

        message = f"showing channels {', '.join(self.channel_labels)}"
        logger.info(message)
        return CommandResult(status=Status.OK, message=message, payload=self.channel_labels)

    def _channels_up(self, command: cmd.ChannelsUp) -> CommandResult:
        return self._page(-1)

    def _channels_down(self, command: cmd.ChannelsDown) -> CommandResult:
        return self._page(1)

    def _select_channels(self, command: cmd.SelectChannels) -> CommandResult:
        try:
            shown, _ = _resolve_channels(self.labels, command.labels, [self.labels[i] for i in self.clamped_channels])
        except ConfigurationError as exc:
            return self._warn(f"{exc}, keeping the current channels")
        if not shown and not command.labels:
            return self._warn("no channels selected, keeping the current channels")
        self.shown_channels = shown
        message = f"showing channels {', '.join(self.channel_labels)}"
        logger.info(message)
        return CommandResult(status=Status.OK, message=message, payload=self.channel_labels)

    # preprocessing

    def _set_preproc(self, command: cmd.SetPreproc) -> CommandResult:
        try:
            self.preproc = attrs.evolve(self.preproc, **command.options)
        except (TypeError, ValueError) as exc:
            return self._warn(f"invalid preprocessing options: {exc}")
        message = f"preprocessing: {command.options}"
        logger.info(message)
        return CommandResult(status=Status.OK, message=message, payload=self.preproc)
