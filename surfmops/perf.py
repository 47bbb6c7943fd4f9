"""
surfmops Performance Evaluation: ED-116 / ED-117 Compliance Metrics
=====================================================================

Consumes completed tracks and computes, per (system type, named area):

  UR    update rate                          (all sensor systems)
  PD    probability of detection             (against the reference)
  PFD   probability of false detection       (ED-117: MLAT, ADS-B)
  PFD2  probability of false detection       (ED-116: SMR)
  PID   probability of correct ident / Mode-3A   (ED-117)
  PFID  probability of false ident / Mode-3A     (ED-117)
  PLG   probability of long gaps             (ED-117)
  RPA   reported position accuracy statistics

The reference is the DGPS vehicle in reference mode and ADS-B in
comparative mode. MLAT and ADS-B tracks are associated to a reference
track by Mode-S address; SMR tracks, which carry no address, by space-time
proximity of their reports to the interpolated reference trajectory.

Every windowed metric is driven by :class:`surfmops.counters.IntervalCounter`
sized from an immutable :class:`EvaluationPeriods` snapshot.

Usage::

    evaluator = PerfEvaluator(ProcessingMode.COMPARATIVE, config.evaluation_periods())
    while track_extractor.has_pending_data():
        track = track_extractor.take_data()
        if track is None:
            break
        evaluator.add_data(track)
    results = evaluator.run()
    print(format_results(results))

Author: surfmops contributors
License: AGPL-3.0-or-later
"""

from __future__ import annotations

import logging
from bisect import bisect_left, bisect_right
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .counters import (IntervalCounter, PdCounter, PfdCounter, PfdCounter2,
                       PfidCounter, PidCounter, PlgCounter, UrCounter)
from .geo import planar_distance
from .model import Area, NamedArea, ProcessingMode, SystemType, TargetReport
from .tracks import Track, interpolate_positions

logger = logging.getLogger(__name__)

ED116_SYSTEMS = (SystemType.SMR,)
ED117_SYSTEMS = (SystemType.MLAT, SystemType.ADSB)
SENSOR_SYSTEMS = ED116_SYSTEMS + ED117_SYSTEMS

DEFAULT_PD_PERIODS = {
    Area.RUNWAY: 1.0,
    Area.TAXIWAY: 2.0,
    Area.APRON: 5.0,
    Area.STAND: 5.0,
    Area.AIRBORNE: 1.0,
    Area.OTHER: 2.0,
}

DEFAULT_LONG_GAP_THRESHOLDS = {
    Area.STAND: 15.0,
}
DEFAULT_LONG_GAP_THRESHOLD = 3.0

Key = Tuple[SystemType, NamedArea]


# ---------------------------------------------------------------------------
# Configuration snapshot
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EvaluationPeriods:
    """Immutable evaluation parameters, all times in seconds."""
    ed116_update_period: float = 1.0
    ed117_update_period: float = 1.0
    ed116_area_update_periods: Mapping[Area, float] = field(default_factory=dict)
    ed117_area_update_periods: Mapping[Area, float] = field(default_factory=dict)
    silence_period: float = 5.0
    pd_periods: Mapping[Area, float] = field(
        default_factory=lambda: dict(DEFAULT_PD_PERIODS))
    long_gap_thresholds: Mapping[Area, float] = field(
        default_factory=lambda: dict(DEFAULT_LONG_GAP_THRESHOLDS))
    association_distance: float = 30.0      # SMR report to reference [m]
    association_score: float = 0.7          # share of SMR reports within distance
    false_detection_distance: float = 50.0  # [m]
    pic_percentile: float = 95.0            # ADS-B reference quality cut

    def __post_init__(self):
        pd_periods = dict(DEFAULT_PD_PERIODS)
        pd_periods.update(self.pd_periods)
        object.__setattr__(self, "pd_periods", MappingProxyType(pd_periods))
        object.__setattr__(self, "long_gap_thresholds",
                           MappingProxyType(dict(self.long_gap_thresholds)))
        for name in ("ed116_area_update_periods", "ed117_area_update_periods"):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))

    def update_period(self, sys_type: SystemType, area: Optional[Area] = None) -> float:
        """Nominal reporting period of ``sys_type``, overridden per area."""
        if sys_type in ED116_SYSTEMS:
            return self.ed116_area_update_periods.get(area, self.ed116_update_period)
        return self.ed117_area_update_periods.get(area, self.ed117_update_period)

    def pd_period(self, area: Area) -> float:
        return self.pd_periods[area]

    def long_gap_threshold(self, area: Area) -> float:
        return self.long_gap_thresholds.get(area, DEFAULT_LONG_GAP_THRESHOLD)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

METRIC_TYPES = {
    "ur": UrCounter,
    "pd": PdCounter,
    "pfd": PfdCounter,
    "pfd2": PfdCounter2,
    "pid_ident": PidCounter,
    "pid_mode_3a": PidCounter,
    "pfid_ident": PfidCounter,
    "pfid_mode_3a": PfidCounter,
    "plg": PlgCounter,
}


@dataclass
class PositionAccuracy:
    n: int
    mean: float
    std: float
    p95: float
    p99: float


def position_accuracy(errors: Sequence[float]) -> Optional[PositionAccuracy]:
    """Summary statistics of position errors [m], None without samples."""
    if len(errors) == 0:
        return None
    arr = np.asarray(errors, dtype=float)
    return PositionAccuracy(
        n=len(arr),
        mean=float(np.mean(arr)),
        std=float(np.std(arr, ddof=1)) if len(arr) > 1 else 0.0,
        p95=float(np.percentile(arr, 95)),
        p99=float(np.percentile(arr, 99)),
    )


def _table(counter_type):
    return field(default_factory=lambda: defaultdict(counter_type))


@dataclass
class PerfResults:
    """Counters keyed by (system type, named area)."""
    ur: Dict[Key, UrCounter] = _table(UrCounter)
    pd: Dict[Key, PdCounter] = _table(PdCounter)
    pfd: Dict[Key, PfdCounter] = _table(PfdCounter)
    pfd2: Dict[Key, PfdCounter2] = _table(PfdCounter2)
    pid_ident: Dict[Key, PidCounter] = _table(PidCounter)
    pid_mode_3a: Dict[Key, PidCounter] = _table(PidCounter)
    pfid_ident: Dict[Key, PfidCounter] = _table(PfidCounter)
    pfid_mode_3a: Dict[Key, PfidCounter] = _table(PfidCounter)
    plg: Dict[Key, PlgCounter] = _table(PlgCounter)
    rpa: Dict[Key, List[float]] = field(default_factory=lambda: defaultdict(list))

    def total(self, metric: str, sys_type: SystemType, area: Optional[Area] = None):
        """Sum of ``metric`` counters for ``sys_type``, optionally one area."""
        result = METRIC_TYPES[metric]()
        for (s, narea), counter in getattr(self, metric).items():
            if s is sys_type and (area is None or narea.area is area):
                result = result + counter
        return result

    def accuracy(self, sys_type: SystemType,
                 area: Optional[Area] = None) -> Optional[PositionAccuracy]:
        errors: List[float] = []
        for (s, narea), values in self.rpa.items():
            if s is sys_type and (area is None or narea.area is area):
                errors.extend(values)
        return position_accuracy(errors)


def _key_order(key: Key):
    sys_type, narea = key
    return (list(SystemType).index(sys_type), list(Area).index(narea.area),
            narea.name or "")


def _fmt_ratio(value: Optional[float]) -> str:
    return "n/a" if value is None else f"{100.0 * value:8.3f}%"


def format_results(results: PerfResults) -> str:
    """Plain-text listing of every counter and its ratio."""
    lines = []
    for metric in METRIC_TYPES:
        table = getattr(results, metric)
        for key in sorted(table, key=_key_order):
            counter = table[key]
            values = " ".join(f"{k}={v}" for k, v in vars(counter).items())
            lines.append(f"{metric.upper():<13} {key[0].value:<5} {str(key[1]):<24} "
                         f"{values:<40} {_fmt_ratio(counter.ratio())}")
    for key in sorted(results.rpa, key=_key_order):
        acc = position_accuracy(results.rpa[key])
        if acc is None:
            continue
        lines.append(f"{'RPA':<13} {key[0].value:<5} {str(key[1]):<24} "
                     f"n={acc.n} mean={acc.mean:.2f} std={acc.std:.2f} "
                     f"p95={acc.p95:.2f} p99={acc.p99:.2f}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------

class PerfEvaluator:
    """Accumulates tracks and computes the compliance counters.

    Args:
        mode: REFERENCE (DGPS ground truth) or COMPARATIVE (ADS-B reference)
        periods: Evaluation parameters
    """

    def __init__(self, mode: ProcessingMode = ProcessingMode.COMPARATIVE,
                 periods: Optional[EvaluationPeriods] = None):
        self._mode = mode
        self._periods = periods or EvaluationPeriods()
        self._tracks: Dict[SystemType, List[Track]] = {s: [] for s in SystemType}
        self._ur: Dict[Key, UrCounter] = defaultdict(UrCounter)

    @property
    def reference_system(self) -> SystemType:
        if self._mode is ProcessingMode.REFERENCE:
            return SystemType.DGPS
        return SystemType.ADSB

    def tracks(self, sys_type: SystemType) -> List[Track]:
        return list(self._tracks[sys_type])

    def add_data(self, track: Track):
        """Take ownership of a released track and account its update rate."""
        if not track:
            return
        self._tracks[track.sys_type].append(track)
        if track.sys_type in SENSOR_SYSTEMS:
            self._update_rate(track)

    def _update_rate(self, track: Track):
        for segment in track.split(self._periods.silence_period):
            period = self._periods.update_period(track.sys_type, segment.narea.area)
            counter = IntervalCounter(period, start=segment.begin)
            for timestamp in segment.timestamps():
                counter.update(timestamp)
            counter.finish(segment.end)
            basic = counter.read()
            self._ur[(track.sys_type, segment.narea)] += UrCounter(
                n_etrp=basic.total, n_trp=basic.valid)

    def run(self) -> PerfResults:
        """Associate test tracks to the reference and compute all metrics."""
        results = PerfResults()
        for key, counter in self._ur.items():
            results.ur[key] = counter

        ref_sys = self.reference_system
        references = [t for t in self._tracks[ref_sys] if t]
        pic_threshold = self._pic_threshold(references)
        smr_reports = sorted((r for t in self._tracks[SystemType.SMR] for r in t),
                             key=lambda r: r.timestamp)

        for sys_type in SENSOR_SYSTEMS:
            if sys_type is ref_sys:
                continue
            tests = self._tracks[sys_type]
            if not tests:
                logger.info("No %s tracks to evaluate", sys_type.value)
                continue
            for ref in references:
                matched = self._associate(ref, tests)
                logger.debug("Reference %s track %d: %d %s track(s) associated",
                             ref_sys.value, ref.track_number, len(matched),
                             sys_type.value)
                self._evaluate_reference(results, ref, matched, sys_type,
                                         pic_threshold, smr_reports)
            if sys_type in ED117_SYSTEMS:
                for track in tests:
                    self._long_gaps(results, track)
        return results

    # -- association --------------------------------------------------------

    def _associate(self, ref: Track, tests: List[Track]) -> List[Track]:
        overlapping = [t for t in tests if t.begin <= ref.end and t.end >= ref.begin]
        if not overlapping:
            return []
        if overlapping[0].sys_type is SystemType.SMR:
            return [t for t in overlapping
                    if self._association_score(ref, t) >= self._periods.association_score]
        mode_s = ref.mode_s
        if mode_s is None:
            return []
        return [t for t in overlapping if t.mode_s == mode_s]

    def _association_score(self, ref: Track, test: Track) -> float:
        """Share of the test reports within the association distance."""
        expected = interpolate_positions(ref, test.timestamps())
        covered = ~np.isnan(expected[:, 0])
        if not covered.any():
            return 0.0
        actual = test.positions()[covered]
        dist = planar_distance(actual[:, 0], actual[:, 1],
                               expected[covered, 0], expected[covered, 1])
        return float(np.count_nonzero(dist <= self._periods.association_distance)
                     / covered.sum())

    # -- per reference -------------------------------------------------------

    def _evaluate_reference(self, results: PerfResults, ref: Track,
                            matched: List[Track], sys_type: SystemType,
                            pic_threshold: Optional[float],
                            smr_reports: List[TargetReport]):
        test_reports = sorted((r for t in matched for r in t),
                              key=lambda r: r.timestamp)
        for segment in ref.split(self._periods.silence_period):
            self._detection(results, segment, test_reports, sys_type)
            if sys_type is SystemType.SMR:
                self._false_detection_ed116(results, segment, smr_reports)

        if sys_type in ED117_SYSTEMS:
            in_span = [r for r in test_reports if ref.begin <= r.timestamp <= ref.end]
            self._false_detection_ed117(results, ref, in_span, sys_type)
            self._identification(results, ref, in_span, sys_type)

        for track in matched:
            self._position_accuracy(results, ref, track, pic_threshold)

    @staticmethod
    def _in_segment(reports: List[TargetReport], segment: Track) -> List[TargetReport]:
        times = [r.timestamp for r in reports]
        lo = bisect_left(times, segment.begin)
        hi = bisect_right(times, segment.end)
        return reports[lo:hi]

    def _windows(self, segment: Track, reports: List[TargetReport]):
        """Windows touched by the reference segment, and those hit by ``reports``."""
        counter = IntervalCounter(self._periods.pd_period(segment.narea.area),
                                  start=segment.begin)
        for report in reports:
            counter.update(report.timestamp)
        counter.finish(segment.end + counter.period)
        return counter.read()

    def _detection(self, results: PerfResults, segment: Track,
                   test_reports: List[TargetReport], sys_type: SystemType):
        basic = self._windows(segment, self._in_segment(test_reports, segment))
        results.pd[(sys_type, segment.narea)] += PdCounter(n_trp=basic.valid,
                                                           n_up=basic.total)

    def _false_detection_ed116(self, results: PerfResults, segment: Track,
                               smr_reports: List[TargetReport]):
        candidates = self._in_segment(smr_reports, segment)
        if candidates:
            expected = interpolate_positions(segment, [r.timestamp for r in candidates])
            actual = np.array([[r.x, r.y] for r in candidates])
            dist = planar_distance(actual[:, 0], actual[:, 1],
                                   expected[:, 0], expected[:, 1])
            near = dist <= self._periods.false_detection_distance
            candidates = [r for r, keep in zip(candidates, near) if keep]
        basic = self._windows(segment, candidates)
        results.pfd2[(SystemType.SMR, segment.narea)] += PfdCounter2(
            n_tr=len(candidates), n_etr=basic.total, n_u=basic.valid)

    def _false_detection_ed117(self, results: PerfResults, ref: Track,
                               reports: List[TargetReport], sys_type: SystemType):
        if not reports:
            return
        expected = interpolate_positions(ref, [r.timestamp for r in reports])
        for report, (x, y) in zip(reports, expected):
            if np.isnan(x):
                continue
            false = planar_distance(report.x, report.y, x, y) >= \
                self._periods.false_detection_distance
            results.pfd[(sys_type, report.narea)] += PfdCounter(n_ftr=int(false), n_tr=1)

    def _identification(self, results: PerfResults, ref: Track,
                        reports: List[TargetReport], sys_type: SystemType):
        ref_reports = ref.reports
        ref_times = ref.timestamps()
        for report in reports:
            i = bisect_right(ref_times, report.timestamp)
            bracket = ref_reports[max(i - 1, 0):i + 1]
            for attr, pid, pfid in (("ident", results.pid_ident, results.pfid_ident),
                                    ("mode_3a", results.pid_mode_3a,
                                     results.pfid_mode_3a)):
                value = getattr(report, attr)
                expected = {getattr(r, attr) for r in bracket} - {None}
                if value is None or not expected:
                    continue
                correct = value in expected
                key = (sys_type, report.narea)
                pid[key] += PidCounter(n_citr=int(correct), n_itr=1)
                pfid[key] += PfidCounter(n_eitr=int(not correct), n_itr=1)

    def _pic_threshold(self, references: List[Track]) -> Optional[float]:
        if self._mode is ProcessingMode.REFERENCE:
            return None
        pics = [r.pic for t in references for r in t
                if r.ver == 2 and r.pic is not None]
        if not pics:
            return None
        return float(np.percentile(pics, self._periods.pic_percentile))

    def _position_accuracy(self, results: PerfResults, ref: Track, test: Track,
                           pic_threshold: Optional[float]):
        ref_reports = [r for r in ref if test.covers(r.timestamp)]
        if self._mode is ProcessingMode.COMPARATIVE:
            if pic_threshold is None:
                return
            ref_reports = [r for r in ref_reports
                           if r.ver == 2 and r.pic is not None and r.pic >= pic_threshold]
        if not ref_reports:
            return
        estimated = interpolate_positions(test, [r.timestamp for r in ref_reports])
        for report, (x, y) in zip(ref_reports, estimated):
            if np.isnan(x):
                continue
            error = float(planar_distance(x, y, report.x, report.y))
            results.rpa[(test.sys_type, report.narea)].append(error)

    def _long_gaps(self, results: PerfResults, track: Track):
        previous: Optional[datetime] = None
        for report in track:
            key = (track.sys_type, report.narea)
            gap = 0
            if previous is not None:
                elapsed = (report.timestamp - previous).total_seconds()
                gap = int(elapsed >= self._periods.long_gap_threshold(report.narea.area))
            results.plg[key] += PlgCounter(n_g=gap, n_tr=1)
            previous = report.timestamp
