"""Sample sources feeding a browsing session.

A DataSource pairs a Header with a ``fetch_samples(begin, end, channel_indices)``
callable returning a ``(channels, end - begin + 1)`` float matrix. Sources may
return fewer columns than asked for (e.g. past the end of the recording); the
missing samples are filled with NaN by ``DataSource.fetch``.
"""
from __future__ import annotations

from typing import Callable, Iterable, Sequence

import numpy as np
from loguru import logger

from artifact_browser.core.data_models import (
    ConfigurationError,
    Event,
    Header,
    Segment,
    round_half_away,
)

FetchSamples = Callable[[int, int, Sequence[int]], np.ndarray]


def trial_definition_from_header(header: Header, continuous: bool) -> list[Segment]:
    """Original segmentation implied by a header.

    Continuous data is one segment spanning every sample; otherwise there is one
    segment per header trial, all of ``n_samples`` samples.

    Raises:
        ConfigurationError: If the header describes no samples or no trials
    """
    if header.n_trials < 1:
        raise ConfigurationError("the header describes no trials")
    if header.n_samples < 1:
        raise ConfigurationError("the header describes no samples")

    n = header.n_samples
    if continuous:
        return [Segment(0, n * header.n_trials - 1, -header.n_samples_pre)]
    return [
        Segment(i * n, (i + 1) * n - 1, -header.n_samples_pre)
        for i in range(header.n_trials)
    ]


class DataSource:
    """Header plus a sample fetcher, optionally with events and a trial definition."""

    def __init__(
        self,
        header: Header,
        fetch_samples: FetchSamples,
        events: Iterable[Event] | None = None,
        trials: Sequence[Segment] | None = None,
    ):
        self.header = header
        self._fetch_samples = fetch_samples
        self.events: list[Event] = list(events or [])
        self._trials = None if trials is None else list(trials)

    @property
    def sampling_rate(self) -> float:
        return self.header.sampling_rate

    @property
    def labels(self) -> list[str]:
        return list(self.header.labels)

    def trial_definition(self, continuous: bool = False) -> list[Segment]:
        """Explicit trial definition if one was given, otherwise the header's."""
        if self._trials is not None:
            return list(self._trials)
        return trial_definition_from_header(self.header, continuous)

    def fetch(self, begin: int, end: int, channel_indices: Sequence[int]) -> np.ndarray:
        """Samples ``[begin, end]`` of the given channels, NaN where the source has none."""
        n = max(int(end) - int(begin) + 1, 0)
        out = np.full((len(channel_indices), n), np.nan)
        if n == 0 or len(channel_indices) == 0:
            return out

        data = np.atleast_2d(np.asarray(self._fetch_samples(int(begin), int(end), list(channel_indices)), dtype=float))
        width = min(data.shape[-1], n)
        out[:, :width] = data[:, :width]
        return out


class InMemoryData(DataSource):
    """Trials held in memory, e.g. after preprocessing elsewhere.

    Each trial is a ``(channels, samples)`` array; continuous data is a single
    trial. ``sampleinfo`` gives the absolute inclusive ``(begin, end)`` of every
    trial, defaulting to trials placed back to back.
    """

    def __init__(
        self,
        trials: Sequence[np.ndarray],
        sampling_rate: float,
        labels: Sequence[str],
        sampleinfo: np.ndarray | Sequence[tuple[int, int]] | None = None,
        offsets: Sequence[int] | None = None,
        events: Iterable[Event] | None = None,
    ):
        if len(trials) == 0:
            raise ConfigurationError("no trials to display")
        self.trials = [np.atleast_2d(np.asarray(t, dtype=float)) for t in trials]

        n_channels = {t.shape[0] for t in self.trials}
        if n_channels != {len(labels)}:
            raise ConfigurationError(
                f"every trial needs {len(labels)} channel(s), got {sorted(n_channels)}"
            )

        lengths = [t.shape[1] for t in self.trials]
        empty = [i for i, n in enumerate(lengths) if n == 0]
        if empty:
            raise ConfigurationError(f"trial(s) {empty} hold no samples")
        if sampleinfo is None:
            begins = np.concatenate(([0], np.cumsum(lengths)[:-1]))
            sampleinfo = np.column_stack((begins, begins + np.array(lengths) - 1))
        self.sampleinfo = np.asarray(sampleinfo, dtype=np.int64).reshape(-1, 2)
        if len(self.sampleinfo) != len(self.trials):
            raise ConfigurationError(
                f"sampleinfo has {len(self.sampleinfo)} row(s) for {len(self.trials)} trial(s)"
            )
        if np.any(self.sampleinfo[:, 1] - self.sampleinfo[:, 0] + 1 != lengths):
            raise ConfigurationError("sampleinfo does not match the trial lengths")

        self.offsets = np.zeros(len(self.trials), dtype=np.int64) if offsets is None else np.asarray(offsets, dtype=np.int64)

        header = Header(
            sampling_rate=sampling_rate,
            labels=list(labels),
            n_samples=max(lengths) if len(self.trials) > 1 else lengths[0],
            n_trials=len(self.trials),
            n_samples_pre=0,
        )
        trial_segments = [
            Segment(b, e, o) for (b, e), o in zip(self.sampleinfo, self.offsets)
        ]
        super().__init__(header, self._fetch_from_trials, events=events, trials=trial_segments)
        logger.debug(
            f"In-memory data: {len(self.trials)} trial(s), {len(labels)} channel(s), {sampling_rate:g} Hz"
        )

    @classmethod
    def from_trials(
        cls,
        trials: Sequence[np.ndarray],
        sampling_rate: float,
        labels: Sequence[str],
        sampleinfo: np.ndarray | Sequence[tuple[int, int]] | None = None,
        offsets: Sequence[int] | None = None,
        events: Iterable[Event] | None = None,
    ) -> InMemoryData:
        """Create an in-memory source from a list of trials."""
        return cls(trials, sampling_rate, labels, sampleinfo=sampleinfo, offsets=offsets, events=events)

    def _fetch_from_trials(self, begin: int, end: int, channel_indices: Sequence[int]) -> np.ndarray:
        out = np.full((len(channel_indices), end - begin + 1), np.nan)
        for trial, (t_begin, t_end) in zip(self.trials, self.sampleinfo):
            lo = max(begin, int(t_begin))
            hi = min(end, int(t_end))
            if hi < lo:
                continue
            out[:, lo - begin:hi - begin + 1] = trial[channel_indices, lo - t_begin:hi - t_begin + 1]
        return out


def representative_block(source: DataSource, channel_indices: Sequence[int]) -> np.ndarray:
    """Block of data used to estimate the initial vertical limits.

    For in-memory data this is the first trial whose selected channels are not
    all NaN; otherwise it is the first second of the recording.
    """
    if isinstance(source, InMemoryData):
        for trial in source.trials:
            block = trial[list(channel_indices)]
            if not np.all(np.isnan(block)):
                return block
        return source.trials[0][list(channel_indices)]

    n = max(round_half_away(source.sampling_rate), 1)
    n_total = source.header.n_samples * max(source.header.n_trials, 1)
    end = min(n, n_total) - 1 if n_total > 0 else n - 1
    return source.fetch(0, end, channel_indices)
