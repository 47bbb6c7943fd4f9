"""
surfmops Tracks: Grouping Target Reports per Source and Track Number
=====================================================================

A Track is the ordered sequence of target reports one surveillance system
published under one track number. TrackExtractor builds tracks from the
extractor output and releases them downstream, one at a time, in a fixed
order: system type (declaration order of SystemType), then ascending track
number.

Processing modes:
  - REFERENCE: every track is released.
  - COMPARATIVE: MLAT and ADS-B tracks are released only when at least one
    report classifies the target as an aircraft; the others are dropped.

Author: surfmops contributors
License: AGPL-3.0-or-later
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Set

import numpy as np
from scipy.interpolate import interp1d

from .model import (NamedArea, ProcessingMode, SystemType, TargetReport,
                    TargetType)

logger = logging.getLogger(__name__)


class Track:
    """Reports sharing (system type, track number), in arrival order."""

    def __init__(self, sys_type: SystemType, track_number: int,
                 reports: Iterable[TargetReport] = ()):
        self.sys_type = sys_type
        self.track_number = track_number
        self._reports: List[TargetReport] = []
        for report in reports:
            self.add_data(report)

    def add_data(self, report: TargetReport):
        if report.sys_type is not self.sys_type or report.track_number != self.track_number:
            raise ValueError(
                f"Report of {report.sys_type.value}/{report.track_number} does not "
                f"belong to track {self.sys_type.value}/{self.track_number}")
        self._reports.append(report)

    @property
    def reports(self) -> List[TargetReport]:
        return list(self._reports)

    def __len__(self) -> int:
        return len(self._reports)

    def __iter__(self):
        return iter(self._reports)

    def __bool__(self) -> bool:
        return bool(self._reports)

    @property
    def begin(self) -> Optional[datetime]:
        return self._reports[0].timestamp if self._reports else None

    @property
    def end(self) -> Optional[datetime]:
        return self._reports[-1].timestamp if self._reports else None

    def duration(self) -> float:
        """Seconds between the first and last report (NaN when empty)."""
        if not self._reports:
            return float("nan")
        return (self.end - self.begin).total_seconds()

    def covers(self, timestamp: datetime) -> bool:
        return bool(self._reports) and self.begin <= timestamp <= self.end

    def target_types(self) -> Set[TargetType]:
        return {r.target_type for r in self._reports if r.target_type is not None}

    @property
    def mode_s(self) -> Optional[int]:
        """First Mode-S address reported on the track."""
        for report in self._reports:
            if report.mode_s is not None:
                return report.mode_s
        return None

    def timestamps(self) -> List[datetime]:
        return [r.timestamp for r in self._reports]

    def seconds_since(self, epoch: datetime) -> np.ndarray:
        return np.array([(r.timestamp - epoch).total_seconds() for r in self._reports])

    def positions(self) -> np.ndarray:
        """Nx2 array of local [x, y] positions."""
        return np.array([[r.x, r.y] for r in self._reports], dtype=float).reshape(-1, 2)

    def copy(self) -> Track:
        return Track(self.sys_type, self.track_number, self._reports)

    def split(self, silence_period: Optional[float] = None) -> List[Track]:
        """Cut the track into segments of one named area each.

        A new segment also starts where two consecutive reports are more
        than ``silence_period`` seconds apart.
        """
        silence = timedelta(seconds=silence_period) if silence_period else None
        segments: List[Track] = []
        previous: Optional[TargetReport] = None
        for report in self._reports:
            if (previous is None
                    or report.narea != previous.narea
                    or (silence is not None
                        and report.timestamp - previous.timestamp > silence)):
                segments.append(Track(self.sys_type, self.track_number))
            segments[-1]._reports.append(report)
            previous = report
        return segments

    @property
    def narea(self) -> Optional[NamedArea]:
        """Named area of the first report."""
        return self._reports[0].narea if self._reports else None

    def __repr__(self):
        return (f"Track({self.sys_type.value}, {self.track_number}, "
                f"n={len(self._reports)})")


def interpolate_positions(track: Track, times: Iterable[datetime]) -> np.ndarray:
    """Linear interpolation of the track position at ``times``.

    Args:
        track: Track with time-ascending reports
        times: Timestamps to resample at

    Returns:
        np.ndarray: Nx2 [x, y], NaN rows where the track does not cover the time
    """
    times = list(times)
    result = np.full((len(times), 2), np.nan)
    if not track or not times:
        return result

    epoch = track.begin
    t_track, unique_idx = np.unique(track.seconds_since(epoch), return_index=True)
    xy = track.positions()[unique_idx]
    t_query = np.array([(t - epoch).total_seconds() for t in times])

    if len(t_track) == 1:
        hits = t_query == t_track[0]
        result[hits] = xy[0]
        return result

    f = interp1d(t_track, xy, axis=0, kind="linear",
                 bounds_error=False, fill_value=np.nan, assume_sorted=True)
    return f(t_query)


# ---------------------------------------------------------------------------
# Track extraction
# ---------------------------------------------------------------------------

class TrackExtractor:
    """Groups target reports into tracks and releases them in order.

    Args:
        mode: Processing mode, fixed for the lifetime of the extractor
    """

    def __init__(self, mode: ProcessingMode = ProcessingMode.COMPARATIVE):
        self._mode = mode
        self._tracks: Dict[SystemType, Dict[int, Track]] = {
            sys_type: {} for sys_type in SystemType
        }

    @property
    def mode(self) -> ProcessingMode:
        return self._mode

    def add_data(self, report: TargetReport):
        tracks = self._tracks[report.sys_type]
        track = tracks.get(report.track_number)
        if track is None:
            track = tracks[report.track_number] = Track(report.sys_type,
                                                        report.track_number)
        track.add_data(report)

    def tracks(self, sys_type: SystemType) -> List[Track]:
        """Copies of the tracks held for ``sys_type``, by track number."""
        tracks = self._tracks[sys_type]
        return [tracks[n].copy() for n in sorted(tracks)]

    def has_pending_data(self) -> bool:
        return any(self._tracks.values())

    def take_data(self) -> Optional[Track]:
        """Remove and return the next releasable track, or None.

        Tracks rejected by the comparative-mode filter are discarded on the
        way.
        """
        for sys_type, tracks in self._tracks.items():
            for track_number in sorted(tracks):
                track = tracks.pop(track_number)
                if self._accept(track):
                    return track
                logger.debug("Discarding %s track %d without aircraft reports",
                             sys_type.value, track_number)
        return None

    def _accept(self, track: Track) -> bool:
        if self._mode is ProcessingMode.REFERENCE:
            return True
        if track.sys_type in (SystemType.MLAT, SystemType.ADSB):
            return TargetType.AIRCRAFT in track.target_types()
        return True
