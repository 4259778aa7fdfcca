"""Tests for mapping selections to samples and dispatching them."""
import numpy as np
import pytest

from artifact_browser.core import (
    AnalysisRequest,
    AnnotationStore,
    Event,
    Segment,
    Selection,
    SelectionResolver,
    SelectMode,
    Status,
)
from artifact_browser.core.selection import MANUAL_EVENT_TYPE

FS = 100.0
HLIM = (0.0, 1.0)


@pytest.fixture
def segment():
    """Second 1 s trial of a recording at 100 Hz."""
    return Segment(100, 199)


@pytest.fixture
def store():
    return AnnotationStore(["visual", "muscle"], 300)


@pytest.fixture
def resolver(store):
    return SelectionResolver(store, FS)


@pytest.fixture
def single_channel():
    """One displayed channel with a peak at sample 130 and a trough at 140."""
    data = np.zeros((1, 100))
    data[0, 30] = 5.0
    data[0, 40] = -4.0
    return data


class TestSelection:
    def test_from_pixels(self):
        sel = Selection.from_pixels(150, 250, left=100, width=400)
        assert sel.start == pytest.approx(0.125)
        assert sel.stop == pytest.approx(0.375)

    def test_from_pixels_invalid_width(self):
        with pytest.raises(ValueError, match="width"):
            Selection.from_pixels(0, 10, left=0, width=0)

    def test_from_times(self):
        sel = Selection.from_times(0.25, 0.5, (0.0, 2.0))
        assert (sel.start, sel.stop) == pytest.approx((0.125, 0.25))

    def test_clipped_orders_and_clips(self):
        assert Selection(1.5, -0.2).clipped() == (0.0, 1.0)
        assert Selection(0.6, 0.2).clipped() == (0.2, 0.6)


class TestResolveBounds:
    def test_begin_edge_minus_one(self, resolver, segment):
        assert resolver.resolve_bounds(Selection(0.25, 0.5), HLIM, segment) == (124, 150)

    def test_reversed_selection(self, resolver, segment):
        assert resolver.resolve_bounds(Selection(0.5, 0.25), HLIM, segment) == (124, 150)

    def test_confined_to_segment(self, resolver, segment):
        """A selection never crosses the visible segment."""
        assert resolver.resolve_bounds(Selection(-0.5, 2.0), HLIM, segment) == (100, 199)

    def test_with_offset(self, resolver):
        seg = Segment(100, 199, offset=-50)
        begin, end = resolver.resolve_bounds(Selection(0.5, 1.0), (-0.5, 0.5), seg)
        assert begin == 149
        assert end == 199


class TestMarkArtifact:
    def test_toggle(self, resolver, store, segment, single_channel):
        kwargs = dict(
            segment=segment, hlim=HLIM, mode=SelectMode.MARK_ARTIFACT, active_type=1,
            displayed=single_channel,
        )
        outcome = resolver.apply(Selection(0.25, 0.5), **kwargs)
        assert outcome.status is Status.OK
        assert outcome.action == "mark"
        assert outcome.marked
        assert store.intervals("muscle") == [(124, 150)]
        assert store.intervals("visual") == []

        outcome = resolver.apply(Selection(0.25, 0.5), **kwargs)
        assert outcome.action == "unmark"
        assert store.intervals("muscle") == []

    def test_range_past_annotated_samples(self, resolver, store):
        outcome = resolver.mark_artifact(0, 400, 450)
        assert outcome.status is Status.WARNING
        assert outcome.action == "none"
        assert not outcome.marked
        assert not store.channels.any()


class TestMarkEvent:
    def test_peak(self, resolver, store, segment, single_channel):
        outcome = resolver.apply(
            Selection(0.25, 0.5), segment=segment, hlim=HLIM,
            mode=SelectMode.MARK_PEAK_EVENT, active_type=0, displayed=single_channel,
        )
        assert outcome.action == "add_event"
        assert outcome.event == Event(MANUAL_EVENT_TYPE, 130, value="peak", duration=1, offset=0)
        assert list(store.events.samples) == [130]

    def test_trough(self, resolver, store, segment, single_channel):
        outcome = resolver.apply(
            Selection(0.25, 0.5), segment=segment, hlim=HLIM,
            mode=SelectMode.MARK_TROUGH_EVENT, active_type=0, displayed=single_channel,
        )
        assert outcome.event.sample == 140
        assert outcome.event.value == "trough"

    def test_existing_events_are_deleted(self, resolver, store, segment, single_channel):
        store.insert_event_sorted(Event("stim", 135))
        outcome = resolver.apply(
            Selection(0.25, 0.5), segment=segment, hlim=HLIM,
            mode=SelectMode.MARK_PEAK_EVENT, active_type=0, displayed=single_channel,
        )
        assert outcome.action == "delete_events"
        assert outcome.events_removed == 1
        assert len(store.events) == 0

    def test_requires_single_channel(self, resolver, store, segment):
        outcome = resolver.apply(
            Selection(0.25, 0.5), segment=segment, hlim=HLIM,
            mode=SelectMode.MARK_PEAK_EVENT, active_type=0, displayed=np.zeros((2, 100)),
        )
        assert outcome.status is Status.WARNING
        assert outcome.action == "none"
        assert len(store.events) == 0

    def test_anomaly_reported(self, segment, single_channel):
        store = AnnotationStore(["visual"], 300, [Event("a", 250), Event("b", 10)])
        resolver = SelectionResolver(store, FS)
        outcome = resolver.apply(
            Selection(0.25, 0.5), segment=segment, hlim=HLIM,
            mode=SelectMode.MARK_PEAK_EVENT, active_type=0, displayed=single_channel,
        )
        assert outcome.status is Status.ANOMALY
        assert store.events[-1].sample == 130


class TestAnalysis:
    def test_forwards_selected_data(self, store, segment, single_channel):
        received = {}

        def echo(request):
            received["request"] = request
            return "done"

        resolver = SelectionResolver(store, FS, analysis_lookup={"echo": echo}.__getitem__)

        def source(begin, end):
            return np.arange(begin, end + 1, dtype=float)[None, :], ("Fz",)

        outcome = resolver.apply(
            Selection(0.25, 0.5), segment=segment, hlim=HLIM, mode=SelectMode.MARK_ARTIFACT,
            active_type=0, displayed=single_channel, analysis="echo", analysis_source=source,
            title="trial 2/3",
        )
        request = received["request"]
        assert isinstance(request, AnalysisRequest)
        assert outcome.action == "analysis"
        assert outcome.analysis_result == "done"
        assert request.sample_range == (124, 150)
        assert request.samples.shape == (1, 27)
        assert request.time[0] == pytest.approx(0.24)
        assert request.title.startswith("echo: trial 2/3")
        # analyses never touch the store
        assert not store.channels.any()

    def test_missing_lookup(self, resolver, segment, single_channel):
        with pytest.raises(ValueError, match="no analysis lookup"):
            resolver.apply(
                Selection(0.25, 0.5), segment=segment, hlim=HLIM, mode=SelectMode.MARK_ARTIFACT,
                active_type=0, displayed=single_channel, analysis="echo",
            )
