"""
Tests for exceedance segmentation and event metrics.

Most tests use a flat climatology (seasonal mean 0, threshold 1), so the
anomaly equals the observed value.
"""

import dataclasses

import numpy as np
import pandas as pd
import pytest

from marHW.events import (
    CATEGORIES,
    EVENT_COLUMNS,
    EventMembers,
    event_metrics,
    events_to_frame,
    find_runs,
    flag_exceedances,
    join_runs,
    segment_events,
)
from marHW.exceptions import UndefinedStatistic


def members_from(temp, seas=0.0, thresh=1.0, start="2000-01-01"):
    temp = np.asarray(temp, dtype=np.float64)
    n = temp.size
    seas_arr = np.full(n, seas)
    thresh_arr = np.full(n, thresh)
    return EventMembers(
        dates=pd.date_range(start, periods=n, freq="D"),
        temp=temp,
        seas=seas_arr,
        thresh=thresh_arr,
        exceed=temp > thresh_arr,
    )


# =============================================================================
# Run detection
# =============================================================================


class TestFindRuns:
    """Tests for find_runs and join_runs."""

    def test_runs_are_inclusive(self):
        """Run bounds include both end points."""
        assert find_runs([False, True, True, False, True]) == [(1, 2), (4, 4)]

    def test_no_flags(self):
        """No flagged day gives no runs."""
        assert find_runs([False, False]) == []

    def test_all_flagged(self):
        """A fully flagged series is a single run."""
        assert find_runs([True] * 4) == [(0, 3)]

    def test_join_inclusive_gap(self):
        """Runs separated by exactly max_gap days merge."""
        assert join_runs([(0, 2), (5, 7)], max_gap=2) == [(0, 7)]

    def test_join_gap_too_large(self):
        """Runs separated by max_gap + 1 days stay apart."""
        assert join_runs([(0, 2), (6, 8)], max_gap=2) == [(0, 2), (6, 8)]

    def test_join_chain(self):
        """Merging continues across several short gaps."""
        assert join_runs([(0, 1), (3, 4), (6, 7)], max_gap=1) == [(0, 7)]


# =============================================================================
# Exceedance flags
# =============================================================================


class TestFlagExceedances:
    """Tests for flag_exceedances."""

    def test_warm_strictly_above(self, make_clim):
        """Warm mode flags values strictly above the threshold."""
        clim = make_clim([0.5, 1.0, 1.5])
        assert flag_exceedances(clim, "warm").tolist() == [False, False, True]

    def test_cold_strictly_below(self, make_clim):
        """Cold mode flags values strictly below the threshold."""
        clim = make_clim([-2.0, -1.0, 0.0], thresh=-1.0)
        assert flag_exceedances(clim, "cold").tolist() == [True, False, False]

    def test_missing_never_flagged(self, make_clim):
        """Missing observations or thresholds are never flagged."""
        clim = make_clim([2.0, np.nan, 2.0])
        clim.loc[clim.index[2], "thresh"] = np.nan
        assert flag_exceedances(clim).tolist() == [True, False, False]

    def test_invalid_mode(self, make_clim):
        """An unknown mode is rejected."""
        with pytest.raises(ValueError, match="mode"):
            flag_exceedances(make_clim([1.0, 2.0]), "hot")


# =============================================================================
# Segmentation
# =============================================================================


class TestSegmentEvents:
    """Tests for the gap and duration rules."""

    def test_example_scenario(self, make_clim):
        """Two 3-day stretches two days apart merge into one 8-day event; a lone 2-day stretch is dropped."""
        values = [0, 0, 2, 2, 2, 0, 0, 2, 2, 2, 0, 0, 0, 0, 2, 2, 0, 0, 0, 0]
        clim = make_clim(values)

        segments = segment_events(clim, min_duration=3, max_gap=2)
        assert len(segments) == 1
        event = segments[0]
        assert event.duration == 8
        assert event.dates[0] == clim.index[2]
        assert event.dates[-1] == clim.index[9]
        assert event.exceed.tolist() == [True] * 3 + [False] * 2 + [True] * 3

        segments = segment_events(clim, min_duration=5, max_gap=2)
        assert [s.duration for s in segments] == [8]

    def test_gap_exactly_max_gap_merges(self, make_clim):
        """A gap of exactly max_gap days is bridged."""
        clim = make_clim([2, 2, 2, 0, 0, 2, 2, 2])
        segments = segment_events(clim, min_duration=1, max_gap=2)
        assert len(segments) == 1
        assert segments[0].duration == 8

    def test_gap_above_max_gap_separates(self, make_clim):
        """A gap of max_gap + 1 days is not bridged."""
        clim = make_clim([2, 2, 2, 0, 0, 0, 2, 2, 2])
        segments = segment_events(clim, min_duration=1, max_gap=2)
        assert [s.duration for s in segments] == [3, 3]

    def test_min_duration_boundary(self, make_clim):
        """Events of exactly min_duration are kept; one day shorter are dropped."""
        clim = make_clim([2] * 5 + [0] * 5 + [2] * 4)
        segments = segment_events(clim, min_duration=5, max_gap=2)
        assert [s.duration for s in segments] == [5]
        assert segments[0].index_start == 0

    def test_join_disabled(self, make_clim):
        """With join_across_gaps False runs are never merged."""
        clim = make_clim([2, 2, 2, 0, 2, 2, 2])
        segments = segment_events(clim, min_duration=1, max_gap=2, join_across_gaps=False)
        assert [s.duration for s in segments] == [3, 3]

    def test_missing_value_breaks_run(self, make_clim):
        """A missing day inside a run is not flagged, and the shortened runs are dropped."""
        clim = make_clim([0, 2, 2, np.nan, 2, 2, 0])
        assert segment_events(clim, min_duration=5, max_gap=0) == []
        segments = segment_events(clim, min_duration=2, max_gap=0)
        assert [s.duration for s in segments] == [2, 2]

    def test_missing_value_bridged(self, make_clim):
        """A bridged missing day counts towards duration but is not flagged."""
        clim = make_clim([0, 2, 2, np.nan, 2, 2, 0])
        segments = segment_events(clim, min_duration=5, max_gap=1)
        assert len(segments) == 1
        assert segments[0].duration == 5
        assert segments[0].exceed.tolist() == [True, True, False, True, True]

    def test_cold_mode(self, make_clim):
        """Cold mode segments runs below the threshold."""
        clim = make_clim([0, -2, -2, -2, 0], thresh=-1.0)
        segments = segment_events(clim, min_duration=3, mode="cold")
        assert len(segments) == 1
        assert segments[0].index_start == 1

    def test_events_are_disjoint_and_ordered(self, make_clim):
        """No date belongs to two events, and events are ordered by start."""
        rng = np.random.default_rng(1)
        clim = make_clim(rng.normal(0.5, 1.0, 300))
        segments = segment_events(clim, min_duration=2, max_gap=1)
        starts = [s.dates[0] for s in segments]
        assert starts == sorted(starts)
        all_dates = np.concatenate([s.dates.values for s in segments])
        assert len(all_dates) == len(set(all_dates))

    def test_members_subset_of_flagged_or_bridged(self, make_clim):
        """Every member day is flagged or lies within max_gap of a flagged day in the same event."""
        rng = np.random.default_rng(2)
        clim = make_clim(rng.normal(0.5, 1.0, 300))
        flags = flag_exceedances(clim)
        for segment in segment_events(clim, min_duration=2, max_gap=2):
            positions = np.arange(segment.index_start, segment.index_start + segment.duration)
            assert flags[positions[0]] and flags[positions[-1]]
            assert (segment.exceed == flags[positions]).all()
            flagged = positions[flags[positions]]
            assert np.diff(flagged).max(initial=1) <= 3

    @pytest.mark.parametrize(
        "kwargs",
        [{"min_duration": 0}, {"min_duration": 2.5}, {"max_gap": -1}, {"mode": "hot"}],
    )
    def test_invalid_parameters(self, make_clim, kwargs):
        """Invalid rules are rejected with ValueError."""
        with pytest.raises(ValueError):
            segment_events(make_clim([2, 2, 2]), **kwargs)

    def test_precomputed_flags(self, make_clim):
        """Flags computed beforehand give the same events as flagging inside."""
        clim = make_clim([0, 2, 2, 2, 0, 2, 2, 0, 0, 0, 2, 2, 2])
        flags = flag_exceedances(clim)
        expected = segment_events(clim, min_duration=3, max_gap=1)
        segments = segment_events(clim, min_duration=3, max_gap=1, flags=flags)
        assert [(s.index_start, s.duration) for s in segments] == [(1, 6), (10, 3)]
        assert [(s.index_start, s.duration) for s in segments] == \
            [(s.index_start, s.duration) for s in expected]
        assert segments[0].exceed.tolist() == [True, True, True, False, True, True]

    def test_flags_length_mismatch(self, make_clim):
        """Flags must cover every day of the climatology."""
        with pytest.raises(ValueError, match="flags"):
            segment_events(make_clim([2, 2, 2]), min_duration=1, flags=np.array([True, True]))


# =============================================================================
# Event metrics
# =============================================================================


class TestEventMetrics:
    """Tests for event_metrics."""

    def test_statistics(self):
        """Intensities, peak and rates follow their definitions."""
        anomaly = [1.5, 3.0, 2.0, 3.0, 1.2]
        event = event_metrics(members_from(anomaly), event_no=4)

        assert event.event_no == 4
        assert event.duration == 5
        assert event.index_peak == 1
        assert event.date_peak == pd.Timestamp("2000-01-02")
        assert event.intensity_mean == pytest.approx(np.mean(anomaly))
        assert event.intensity_max == pytest.approx(3.0)
        assert event.intensity_cumulative == pytest.approx(np.sum(anomaly))
        assert event.intensity_var == pytest.approx(np.var(anomaly, ddof=1))
        assert event.rate_onset == pytest.approx(1.5)
        assert event.rate_decline == pytest.approx((3.0 - 1.2) / 3)

    def test_threshold_and_absolute_variants(self):
        """relThresh uses temp - thresh; abs uses temp."""
        event = event_metrics(members_from([11.5, 13.0, 12.0], seas=10.0, thresh=11.0))
        assert event.intensity_mean == pytest.approx(2.1666666, rel=1e-6)
        assert event.intensity_max_relThresh == pytest.approx(2.0)
        assert event.intensity_cumulative_relThresh == pytest.approx(3.5)
        assert event.intensity_mean_abs == pytest.approx(12.1666666, rel=1e-6)
        assert event.intensity_max_abs == pytest.approx(13.0)

    def test_peak_tie_takes_earliest(self):
        """The earliest date wins among equal anomaly magnitudes."""
        event = event_metrics(members_from([2.0, 4.0, 4.0, 2.0]))
        assert event.index_peak == 1

    def test_peak_is_largest_magnitude(self):
        """The peak anomaly magnitude is not exceeded by any member."""
        rng = np.random.default_rng(3)
        members = members_from(rng.normal(2.0, 1.0, 30))
        event = event_metrics(members)
        magnitude = np.abs(members.anomaly)
        assert event.date_start <= event.date_peak <= event.date_end
        assert magnitude[event.index_peak - event.index_start] == magnitude.max()

    def test_cold_intensity_max_is_minimum(self):
        """Cold events report the most negative anomaly."""
        members = members_from([-1.5, -3.0, -2.0], thresh=-1.0)
        event = event_metrics(members, mode="cold")
        assert event.intensity_max == pytest.approx(-3.0)
        assert event.rate_onset == pytest.approx(-1.5)

    def test_rate_onset_undefined_at_start(self):
        """A peak on the first day leaves rate_onset undefined."""
        with pytest.warns(UndefinedStatistic, match="rate_onset"):
            event = event_metrics(members_from([5.0, 2.0, 2.0]))
        assert np.isnan(event.rate_onset)
        assert event.rate_decline == pytest.approx(1.5)

    def test_single_day_event(self):
        """A one-day event has no variance and no rates."""
        with pytest.warns(UndefinedStatistic):
            event = event_metrics(members_from([2.0]))
        assert event.duration == 1
        assert np.isnan(event.intensity_var)
        assert np.isnan(event.rate_onset)
        assert np.isnan(event.rate_decline)

    def test_missing_days_skipped(self):
        """Missing temperatures are skipped but count towards duration."""
        event = event_metrics(members_from([2.0, np.nan, 4.0, 2.0]))
        assert event.duration == 4
        assert event.intensity_mean == pytest.approx(8.0 / 3)
        assert event.intensity_cumulative == pytest.approx(8.0)
        assert event.index_peak == 2

    def test_bridged_days_contribute(self):
        """Bridged days below threshold still enter the intensity statistics."""
        event = event_metrics(members_from([2.0, 0.5, 2.0]))
        assert event.intensity_mean == pytest.approx(1.5)


class TestEventRecord:
    """Tests for the Event and EventMembers records."""

    def test_members_read_only(self):
        """Member arrays cannot be modified."""
        members = members_from([2.0, 3.0])
        with pytest.raises(ValueError):
            members.temp[0] = 0.0

    def test_event_frozen(self):
        """Events are immutable."""
        event = event_metrics(members_from([2.0, 3.0, 2.0]))
        with pytest.raises(dataclasses.FrozenInstanceError):
            event.duration = 10

    def test_to_dict_and_frame(self):
        """Event rows carry every statistic but not the member arrays."""
        event = event_metrics(members_from([2.0, 3.0, 2.0]))
        assert list(event.to_dict()) == EVENT_COLUMNS
        frame = events_to_frame([event])
        assert list(frame.columns) == EVENT_COLUMNS
        assert len(frame) == 1

    def test_empty_frame(self):
        """No events give an empty frame with every column."""
        frame = events_to_frame([])
        assert frame.empty
        assert list(frame.columns) == EVENT_COLUMNS


class TestCategories:
    """Tests for Hobday et al. (2018) categories."""

    @pytest.mark.parametrize(
        "peak, expected",
        [(1.5, "I Moderate"), (2.0, "II Strong"), (3.5, "III Severe"), (4.0, "IV Extreme"), (9.0, "IV Extreme")],
    )
    def test_category_at_peak(self, peak, expected):
        """The category is the peak anomaly in multiples of thresh - seas."""
        event = event_metrics(members_from([1.2, peak, 1.2]))
        assert event.category == expected

    def test_cold_category(self):
        """Cold spells are categorised by magnitude."""
        event = event_metrics(members_from([-1.5, -3.2, -1.5], thresh=-1.0), mode="cold")
        assert event.category == "III Severe"

    def test_proportions(self):
        """Category proportions are fractions of event days."""
        event = event_metrics(members_from([1.5, 2.5, 3.5, 0.5]))
        proportions = event.category_proportions
        assert list(proportions) == list(CATEGORIES)
        assert proportions["I Moderate"] == pytest.approx(0.25)
        assert proportions["II Strong"] == pytest.approx(0.25)
        assert proportions["III Severe"] == pytest.approx(0.25)
        assert proportions["IV Extreme"] == pytest.approx(0.0)
