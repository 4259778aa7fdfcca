"""Tests for the browsing session and its command handling."""
import math

import numpy as np
import pytest

from artifact_browser.commands import (
    ChannelsDown,
    ChannelsUp,
    CycleSelectMode,
    FindNext,
    FindPrevious,
    GotoSegment,
    NextSegment,
    PreviousSegment,
    ScaleDown,
    ScaleUp,
    Select,
    SelectArtifactType,
    SelectChannels,
    SetPreproc,
    SetSelectMode,
    SetWindow,
    SetYLim,
    ZoomIn,
    ZoomOut,
)
from artifact_browser.config import BrowserConfig, ConfigManager, PreprocConfig
from artifact_browser.core import (
    BrowserSession,
    ConfigurationError,
    DataSource,
    Event,
    Header,
    InMemoryData,
    SelectMode,
    Status,
    ViewType,
)

FS = 100.0
LABELS = ["Fz", "Cz", "Pz"]


def make_config(**display):
    """Butterfly view so automatic limits are not divided."""
    display.setdefault("view_mode", "butterfly")
    return BrowserConfig.from_dict({"display": display})


@pytest.fixture
def trial_data():
    """Three 1 s trials of three channels; first trial spans -3.2 .. 4.7."""
    trials = []
    for t in range(3):
        data = np.zeros((3, 100))
        data[1] = np.sin(2 * np.pi * 5 * np.arange(100) / FS)
        trials.append(data)
    trials[0][0, 10] = -3.2
    trials[0][0, 20] = 4.7
    return InMemoryData.from_trials(trials, FS, LABELS, events=[Event("stim", 150)])


@pytest.fixture
def continuous_data():
    """10 s of continuous data; Cz has a peak at sample 30 and a trough at 40."""
    data = np.zeros((3, 1000))
    data[1, 30] = 2.0
    data[1, 40] = -2.0
    return InMemoryData.from_trials([data], FS, LABELS)


@pytest.fixture
def session(trial_data):
    return BrowserSession(trial_data, make_config())


@pytest.fixture
def continuous_session(continuous_data):
    return BrowserSession(continuous_data, make_config(), artifacts={"visual": [(250, 260)]})


class TestSetup:
    def test_trial_defaults(self, session):
        assert not session.continuous
        assert session.window_duration == pytest.approx(1.0)
        assert len(session.segments) == 3
        assert session.view_type is ViewType.TRIAL
        assert session.cursor == 0
        assert session.artifact_definitions() == {"visual": []}

    def test_automatic_limits(self, session):
        assert session.ylim == pytest.approx((-4.7, 4.7))

    def test_vertical_view_divides_limits(self, trial_data):
        session = BrowserSession(trial_data, make_config(view_mode="vertical"))
        assert session.ylim == pytest.approx((-0.47, 0.47))

    def test_explicit_limits(self, trial_data):
        session = BrowserSession(trial_data, make_config(ylim=[-10.0, 10.0]))
        assert session.ylim == (-10.0, 10.0)

    def test_continuous_defaults(self, continuous_session):
        assert continuous_session.continuous
        assert len(continuous_session.segments) == 10
        assert continuous_session.view_type is ViewType.SEGMENT

    def test_window_from_config(self, trial_data):
        session = BrowserSession(trial_data, make_config(window_duration=0.5))
        assert session.view_type is ViewType.TRIAL_SEGMENT
        assert len(session.segments) == 2

    def test_empty_channel_selection(self, trial_data):
        with pytest.raises(ConfigurationError, match="no channels"):
            BrowserSession(trial_data, make_config(channel=[]))

    def test_unknown_channel(self, trial_data):
        with pytest.raises(ConfigurationError, match="unknown channel"):
            BrowserSession(trial_data, make_config(channel=["Oz"]))

    def test_zero_trials(self, trial_data):
        with pytest.raises(ConfigurationError, match="no trials"):
            BrowserSession(trial_data, make_config(), trials=[])

    def test_zero_length_recording(self):
        header = Header(FS, ["x"], n_samples=0)
        source = DataSource(header, lambda begin, end, channels: np.zeros((len(channels), 0)))
        with pytest.raises(ConfigurationError, match="no samples"):
            BrowserSession(source, make_config())

    def test_resampled_data_suppresses_events(self):
        header = Header(FS, ["Fz"], n_samples=200, resampled=True)
        source = DataSource(
            header, lambda b, e, c: np.zeros((len(c), e - b + 1)), events=[Event("stim", 50)]
        )
        session = BrowserSession(source, make_config())
        assert session.events == []

    def test_custom_artifact_types(self, trial_data):
        session = BrowserSession(
            trial_data, make_config(), artifacts={"eog": [(10, 20)], "muscle": []}
        )
        assert session.artifact_definitions() == {"eog": [(10, 20)], "muscle": []}


class TestSnapshot:
    def test_contents(self, session):
        snap = session.snapshot()
        assert (snap.segment.begin, snap.segment.end) == (0, 99)
        assert snap.samples.shape == (3, 100)
        assert snap.labels == tuple(LABELS)
        assert snap.annotation_rows.shape == (1, 100)
        assert snap.x_limits == pytest.approx((0.0, 0.99))
        assert snap.y_limits == pytest.approx((-4.7, 4.7))
        assert snap.pad_length == 0
        assert snap.title == "trial 1/3"
        assert snap.select_mode is SelectMode.MARK_ARTIFACT

    def test_events_in_range(self, session):
        assert session.snapshot().events_in_range == ()
        session.dispatch(NextSegment())
        events = session.snapshot().events_in_range
        assert [ev.sample for ev in events] == [150]

    def test_padding(self):
        source = InMemoryData.from_trials([np.ones((1, 250))], FS, ["Fz"])
        session = BrowserSession(source, make_config())
        session.dispatch(GotoSegment(2))
        snap = session.snapshot()
        assert snap.pad_length == 50
        assert snap.samples.shape == (1, 100)
        assert np.all(np.isnan(snap.samples[0, 50:]))
        assert snap.annotation_rows.shape == (1, 100)
        assert snap.x_limits == pytest.approx((2.0, 2.99))

    def test_channel_scale(self, trial_data):
        session = BrowserSession(trial_data, make_config(channel_scale={"Fz": 2.0}))
        snap = session.snapshot()
        assert np.nanmax(snap.samples[0]) == pytest.approx(9.4)

    def test_layout_passed_through(self, trial_data):
        session = BrowserSession(trial_data, make_config(), layout_fn=lambda labels: len(labels))
        assert session.snapshot().layout == 3

    def test_snapshot_is_a_copy(self, session):
        snap = session.snapshot()
        snap.samples[:] = 0
        assert np.nanmax(session.snapshot().samples) == pytest.approx(4.7)


class TestNavigation:
    def test_next_and_previous(self, session):
        assert session.dispatch(NextSegment()).ok
        assert session.cursor == 1
        assert session.title() == "trial 2/3"
        assert session.dispatch(PreviousSegment()).ok
        assert session.cursor == 0

    def test_bounds(self, session):
        assert session.dispatch(PreviousSegment()).status is Status.WARNING
        session.dispatch(GotoSegment(2))
        assert session.dispatch(NextSegment()).status is Status.WARNING
        assert session.cursor == 2

    def test_goto_clamped(self, session):
        result = session.dispatch(GotoSegment(10))
        assert result.status is Status.WARNING
        assert session.cursor == 2


class TestZoom:
    def test_zoom_in_locks_current_trial(self, session):
        session.dispatch(NextSegment())
        result = session.dispatch(ZoomIn())
        assert result.ok
        assert session.window_duration == pytest.approx(1 / math.sqrt(2))
        assert session.view_type is ViewType.TRIAL_SEGMENT
        assert session.segments[0].begin == 100
        assert session.title() == "trial 2/3: segment: 1/2"

    def test_zoom_out_releases_lock(self, session):
        session.dispatch(NextSegment())
        session.dispatch(ZoomIn())
        session.dispatch(NextSegment())
        session.dispatch(ZoomOut())
        assert session.view_type is ViewType.TRIAL
        assert session.window_duration == pytest.approx(1.0)
        assert session.cursor == 1

    def test_set_window(self, continuous_session):
        continuous_session.dispatch(GotoSegment(1))
        assert continuous_session.dispatch(SetWindow(0.5)).ok
        assert len(continuous_session.segments) == 20
        assert continuous_session.cursor == 2

    def test_set_window_too_small(self, continuous_session):
        result = continuous_session.dispatch(SetWindow(0.01))
        assert result.status is Status.WARNING
        assert continuous_session.window_duration == pytest.approx(0.1)

    def test_set_window_invalid(self, continuous_session):
        assert continuous_session.dispatch(SetWindow(-1.0)).status is Status.WARNING
        assert continuous_session.window_duration == pytest.approx(1.0)


class TestVerticalScaling:
    def test_scale_up_and_down(self, session):
        session.dispatch(ScaleUp())
        assert session.ylim[1] == pytest.approx(4.7 / math.sqrt(2))
        session.dispatch(ScaleDown())
        assert session.ylim[1] == pytest.approx(4.7)

    def test_set_ylim(self, session):
        assert session.dispatch(SetYLim([-1, 1])).ok
        assert session.ylim == (-1.0, 1.0)

    def test_set_ylim_policy_uses_displayed_data(self, session):
        session.dispatch(SetYLim("maxmin"))
        assert session.ylim == pytest.approx((-3.2, 4.7))

    def test_malformed_ylim_keeps_limits(self, session):
        result = session.dispatch(SetYLim("bogus"))
        assert result.status is Status.WARNING
        assert session.ylim == pytest.approx((-4.7, 4.7))


class TestArtifactSelection:
    def test_mark_and_unmark(self, session):
        result = session.dispatch(Select(0.25, 0.5))
        assert result.ok
        assert session.artifact_definitions() == {"visual": [(24, 50)]}
        session.dispatch(Select(0.25, 0.5))
        assert session.artifact_definitions() == {"visual": []}

    def test_default_hlim_ends_at_last_sample(self, session):
        """Positions map over first..last sample time, not one sample past it."""
        result = session.dispatch(Select(0.95, 0.95))
        assert (result.payload.begin, result.payload.end) == (93, 94)
        assert session.artifact_definitions() == {"visual": [(93, 94)]}

    def test_mark_in_second_trial(self, session):
        session.dispatch(NextSegment())
        session.dispatch(Select(0.0, 1.0))
        assert session.artifact_definitions() == {"visual": [(100, 199)]}

    def test_select_artifact_type(self, trial_data):
        session = BrowserSession(trial_data, make_config(), artifacts={"eog": [], "muscle": []})
        assert session.dispatch(SelectArtifactType("muscle")).ok
        session.dispatch(Select(0.25, 0.5))
        assert session.artifact_definitions() == {"eog": [], "muscle": [(24, 50)]}

    def test_unknown_artifact_type(self, session):
        assert session.dispatch(SelectArtifactType("eog")).status is Status.WARNING
        assert session.dispatch(SelectArtifactType(5)).status is Status.WARNING
        assert session.active_type == 0


class TestSearch:
    def test_find_next_and_previous(self, continuous_session):
        assert continuous_session.dispatch(FindNext()).ok
        assert continuous_session.cursor == 2
        assert continuous_session.dispatch(FindNext()).status is Status.NOT_FOUND
        assert continuous_session.dispatch(FindPrevious()).status is Status.NOT_FOUND
        continuous_session.dispatch(GotoSegment(9))
        continuous_session.dispatch(FindPrevious())
        assert continuous_session.cursor == 2


class TestEventSelection:
    def test_cycle_select_mode(self, session):
        session.dispatch(CycleSelectMode())
        assert session.select_mode is SelectMode.MARK_PEAK_EVENT
        session.dispatch(CycleSelectMode())
        session.dispatch(CycleSelectMode())
        assert session.select_mode is SelectMode.MARK_ARTIFACT

    def test_unknown_select_mode(self, session):
        assert session.dispatch(SetSelectMode("erase")).status is Status.WARNING
        assert session.select_mode is SelectMode.MARK_ARTIFACT

    def test_peak_and_trough(self, continuous_session):
        continuous_session.dispatch(SelectChannels(["Cz"]))
        continuous_session.dispatch(SetSelectMode("markpeakevent"))
        continuous_session.dispatch(Select(0.25, 0.5))
        continuous_session.dispatch(SetSelectMode("marktroughevent"))
        continuous_session.dispatch(Select(0.35, 0.45))
        assert [(ev.sample, ev.value) for ev in continuous_session.events] == [
            (30, "peak"),
            (40, "trough"),
        ]

    def test_second_selection_deletes(self, continuous_session):
        continuous_session.dispatch(SelectChannels(["Cz"]))
        continuous_session.dispatch(SetSelectMode("markpeakevent"))
        continuous_session.dispatch(Select(0.25, 0.5))
        result = continuous_session.dispatch(Select(0.25, 0.5))
        assert result.payload.events_removed == 1
        assert continuous_session.events == []

    def test_requires_single_channel(self, continuous_session):
        continuous_session.dispatch(SetSelectMode("markpeakevent"))
        result = continuous_session.dispatch(Select(0.25, 0.5))
        assert result.status is Status.WARNING
        assert continuous_session.events == []


class TestAnalysisSelection:
    def test_channel_variance(self, session):
        result = session.dispatch(Select(0.0, 1.0, analysis="channel_variance"))
        assert result.ok
        assert set(result.payload.analysis_result) == set(LABELS)
        assert session.artifact_definitions() == {"visual": []}

    def test_unknown_analysis(self, session):
        assert session.dispatch(Select(0.0, 1.0, analysis="nope")).status is Status.WARNING

    def test_all_channels_scope(self, trial_data):
        config = make_config(channel=["Fz"])
        config.selection.seldat = "all"
        session = BrowserSession(trial_data, config)
        result = session.dispatch(Select(0.0, 1.0, analysis="channel_variance"))
        assert set(result.payload.analysis_result) == set(LABELS)

    def test_injected_analysis(self, trial_data):
        calls = []
        session = BrowserSession(
            trial_data, make_config(), analysis_lookup=lambda name: calls.append
        )
        session.dispatch(Select(0.25, 0.5, analysis="anything"))
        assert calls[0].sample_range == (24, 50)


class TestChannels:
    @pytest.fixture
    def six_channels(self):
        labels = [f"c{i}" for i in range(1, 7)]
        return InMemoryData.from_trials([np.zeros((6, 100))], FS, labels)

    def test_paging(self, six_channels):
        session = BrowserSession(six_channels, make_config(channel=["c1", "c2"]))
        session.dispatch(ChannelsDown())
        assert session.channel_labels == ["c3", "c4"]
        session.dispatch(ChannelsDown())
        session.dispatch(ChannelsDown())
        assert session.channel_labels == ["c5", "c6"]
        session.dispatch(ChannelsUp())
        session.dispatch(ChannelsUp())
        session.dispatch(ChannelsUp())
        assert session.channel_labels == ["c1", "c2"]

    def test_clamped_channels_shown_last(self, six_channels):
        session = BrowserSession(
            six_channels, make_config(channel=["c1", "c2"], channel_clamped=["c6"])
        )
        assert session.channel_labels == ["c1", "c2", "c6"]
        session.dispatch(ChannelsDown())
        session.dispatch(ChannelsDown())
        assert session.channel_labels == ["c4", "c5", "c6"]

    def test_all_channels_shown(self, six_channels):
        session = BrowserSession(six_channels, make_config())
        assert session.dispatch(ChannelsDown()).status is Status.WARNING

    def test_select_channels(self, session):
        assert session.dispatch(SelectChannels(["Pz", "Fz"])).ok
        assert session.channel_labels == ["Fz", "Pz"]
        assert session.snapshot().samples.shape == (2, 100)

    def test_select_unknown_channel(self, session):
        assert session.dispatch(SelectChannels(["Oz"])).status is Status.WARNING
        assert session.channel_labels == LABELS


class TestPreproc:
    def test_demean(self, session):
        session.dispatch(GotoSegment(1))
        assert session.dispatch(SetPreproc({"demean": True})).ok
        samples = session.snapshot().samples
        np.testing.assert_allclose(np.nanmean(samples, axis=1), 0.0, atol=1e-12)

    def test_invalid_options(self, session):
        assert session.dispatch(SetPreproc({"lpfreq": -1.0})).status is Status.WARNING
        assert session.dispatch(SetPreproc({"unknown_option": True})).status is Status.WARNING
        assert session.preproc == PreprocConfig()

    def test_injected_filter(self, trial_data):
        def negate(samples, labels, time, options):
            return -samples, labels, time

        session = BrowserSession(trial_data, make_config(), filter_fn=negate)
        assert np.nanmin(session.snapshot().samples) == pytest.approx(-4.7)


class TestDispatch:
    def test_unknown_command(self, session):
        with pytest.raises(TypeError, match="Unknown command"):
            session.dispatch("next")


class TestConfigSources:
    def test_config_from_manager(self, trial_data, tmp_path, monkeypatch):
        BrowserConfig.from_dict({"display": {"view_mode": "butterfly"}}).save(
            tmp_path / "user_config.json"
        )
        monkeypatch.setenv("ABR_WINDOW_DURATION", "0.5")
        session = BrowserSession(trial_data, ConfigManager(tmp_path))
        assert session.view_mode.value == "butterfly"
        assert len(session.segments) == 2

    def test_offered_analyses(self, trial_data):
        config = make_config()
        config.selection.analyses = ["channel_variance", "missing", "simple_fft"]
        session = BrowserSession(trial_data, config)
        assert session.offered_analyses() == ["channel_variance", "simple_fft"]
