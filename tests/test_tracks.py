"""Tests for tracks and the track extractor."""
import numpy as np
import pytest

from factories import at, make_report, make_track
from surfmops.model import Area, NamedArea, ProcessingMode, SystemType, TargetType
from surfmops.tracks import Track, TrackExtractor, interpolate_positions

RUNWAY = NamedArea(Area.RUNWAY, '07L/25R')
TAXIWAY = NamedArea(Area.TAXIWAY, 'K')


class TestTrack:

    def test_reports_in_arrival_order(self):
        """Three reports one second apart make a 2 s track."""
        extractor = TrackExtractor()
        reports = [make_report(SystemType.SMR, t, track_number=4, x=t) for t in (0.0, 1.0, 2.0)]
        for report in reports:
            extractor.add_data(report)
        (track,) = extractor.tracks(SystemType.SMR)
        assert len(track) == 3
        assert track.reports == reports
        assert track.duration() == pytest.approx(2.0)
        assert (track.begin, track.end) == (at(0.0), at(2.0))

    def test_foreign_report_rejected(self):
        track = Track(SystemType.MLAT, 1)
        with pytest.raises(ValueError):
            track.add_data(make_report(SystemType.MLAT, track_number=2))
        with pytest.raises(ValueError):
            track.add_data(make_report(SystemType.ADSB, track_number=1))

    def test_empty_track(self):
        track = Track(SystemType.MLAT, 1)
        assert not track
        assert np.isnan(track.duration())
        assert track.begin is None
        assert track.mode_s is None

    def test_target_types_and_mode_s(self):
        track = Track(SystemType.MLAT, 1, [
            make_report(t=0.0),
            make_report(t=1.0, mode_s=0x3C6586, target_type=TargetType.GROUND_VEHICLE),
            make_report(t=2.0, mode_s=0x3C6587, target_type=TargetType.AIRCRAFT),
        ])
        assert track.target_types() == {TargetType.GROUND_VEHICLE, TargetType.AIRCRAFT}
        assert track.mode_s == 0x3C6586

    def test_covers(self):
        track = make_track(SystemType.MLAT, 1, [1.0, 2.0, 3.0])
        assert track.covers(at(1.0))
        assert track.covers(at(2.5))
        assert track.covers(at(3.0))
        assert not track.covers(at(3.1))

    def test_split_by_area(self):
        track = Track(SystemType.MLAT, 1, [
            make_report(t=0.0, narea=RUNWAY),
            make_report(t=1.0, narea=RUNWAY),
            make_report(t=2.0, narea=TAXIWAY),
            make_report(t=3.0, narea=RUNWAY),
        ])
        segments = track.split()
        assert [len(s) for s in segments] == [2, 1, 1]
        assert [s.narea for s in segments] == [RUNWAY, TAXIWAY, RUNWAY]

    def test_split_by_silence(self):
        track = make_track(SystemType.MLAT, 1, [0.0, 1.0, 7.0, 8.0, 9.0])
        assert [len(s) for s in track.split(silence_period=5.0)] == [2, 3]
        assert [len(s) for s in track.split()] == [5]

    def test_copy_is_independent(self):
        track = make_track(SystemType.MLAT, 1, [0.0])
        clone = track.copy()
        clone.add_data(make_report(t=1.0))
        assert len(track) == 1


class TestInterpolation:

    def test_linear(self):
        track = make_track(SystemType.ADSB, 1, [0.0, 1.0, 2.0])
        xy = interpolate_positions(track, [at(0.5), at(2.0), at(2.5), at(-1.0)])
        np.testing.assert_allclose(xy[0], [5.0, 0.0])
        np.testing.assert_allclose(xy[1], [20.0, 0.0])
        assert np.isnan(xy[2]).all()
        assert np.isnan(xy[3]).all()

    def test_single_report(self):
        track = make_track(SystemType.ADSB, 1, [1.0])
        xy = interpolate_positions(track, [at(1.0), at(1.5)])
        np.testing.assert_allclose(xy[0], [10.0, 0.0])
        assert np.isnan(xy[1]).all()

    def test_duplicate_timestamps(self):
        track = make_track(SystemType.ADSB, 1, [0.0, 1.0, 1.0, 2.0])
        xy = interpolate_positions(track, [at(1.5)])
        np.testing.assert_allclose(xy[0], [15.0, 0.0])


class TestTrackExtractor:
    """Release order and the processing-mode filter."""

    def _feed(self, extractor, sys_type, track_number, target_type=TargetType.AIRCRAFT):
        extractor.add_data(make_report(sys_type, 0.0, track_number, target_type=target_type))

    def test_release_order(self):
        extractor = TrackExtractor(ProcessingMode.COMPARATIVE)
        for sys_type, number in [(SystemType.MLAT, 5), (SystemType.SMR, 9),
                                 (SystemType.SMR, 2), (SystemType.MLAT, 1),
                                 (SystemType.ADSB, 3)]:
            self._feed(extractor, sys_type, number)
        released = []
        while extractor.has_pending_data():
            track = extractor.take_data()
            released.append((track.sys_type, track.track_number))
        assert released == [(SystemType.SMR, 2), (SystemType.SMR, 9),
                            (SystemType.MLAT, 1), (SystemType.MLAT, 5),
                            (SystemType.ADSB, 3)]
        assert extractor.take_data() is None

    def test_comparative_mode_drops_non_aircraft(self):
        """Rejected tracks are skipped, the scan goes on."""
        extractor = TrackExtractor(ProcessingMode.COMPARATIVE)
        self._feed(extractor, SystemType.MLAT, 1, TargetType.GROUND_VEHICLE)
        self._feed(extractor, SystemType.MLAT, 2, None)
        self._feed(extractor, SystemType.MLAT, 3)
        self._feed(extractor, SystemType.ADSB, 1, TargetType.UNKNOWN)
        self._feed(extractor, SystemType.SMR, 1, None)

        assert extractor.take_data().sys_type is SystemType.SMR
        track = extractor.take_data()
        assert (track.sys_type, track.track_number) == (SystemType.MLAT, 3)
        assert extractor.take_data() is None
        assert not extractor.has_pending_data()

    def test_one_aircraft_report_is_enough(self):
        extractor = TrackExtractor(ProcessingMode.COMPARATIVE)
        extractor.add_data(make_report(SystemType.ADSB, 0.0, 7,
                                       target_type=TargetType.UNKNOWN))
        extractor.add_data(make_report(SystemType.ADSB, 1.0, 7,
                                       target_type=TargetType.AIRCRAFT))
        assert len(extractor.take_data()) == 2

    def test_reference_mode_releases_everything(self):
        extractor = TrackExtractor(ProcessingMode.REFERENCE)
        assert extractor.mode is ProcessingMode.REFERENCE
        self._feed(extractor, SystemType.MLAT, 1, TargetType.GROUND_VEHICLE)
        self._feed(extractor, SystemType.DGPS, 1, TargetType.GROUND_VEHICLE)
        assert extractor.take_data().sys_type is SystemType.MLAT
        assert extractor.take_data().sys_type is SystemType.DGPS
        assert extractor.take_data() is None

    def test_tracks_snapshot(self):
        extractor = TrackExtractor()
        self._feed(extractor, SystemType.MLAT, 1)
        snapshot = extractor.tracks(SystemType.MLAT)
        snapshot[0].add_data(make_report(SystemType.MLAT, 1.0, 1))
        assert len(extractor.tracks(SystemType.MLAT)[0]) == 1
        assert extractor.tracks(SystemType.SMR) == []
