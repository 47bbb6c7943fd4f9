"""
surfmops Counters: Windowed Counting Primitive and Compliance Tallies
======================================================================

IntervalCounter partitions time into consecutive, non-overlapping windows of
fixed length anchored at the first observed timestamp and tallies, per
window, whether at least one event occurred:

    valid : windows that received at least one event
    total : windows elapsed (empty ones included)

so that ``valid / total`` is a true coverage ratio.

The compliance counters (UR, PD, PFD, PID, PFID, PLG) are plain numeric
tallies built on top of it. Each ``ratio()`` returns None when its
denominator is zero; "no data" is never reported as 0 %.

Usage::

    counter = IntervalCounter(period=1.0, start=t0)
    for t in report_times:
        counter.update(t)
    counter.finish(t_end)
    basic = counter.read()     # BasicCounter(valid=..., total=...)

Author: surfmops contributors
License: AGPL-3.0-or-later
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime, timedelta
from typing import Optional, Tuple, Union

U32_MAX = 0xFFFFFFFF

Period = Union[float, timedelta]


def _as_timedelta(period: Period) -> timedelta:
    if isinstance(period, timedelta):
        return period
    return timedelta(seconds=float(period))


# ---------------------------------------------------------------------------
# Interval counting
# ---------------------------------------------------------------------------

@dataclass
class BasicCounter:
    valid: int = 0
    total: int = 0

    def reset(self):
        self.valid = 0
        self.total = 0


class IntervalCounter:
    """Sliding, non-overlapping window counter.

    Uninitialized until ``init()`` (or ``start=``) anchors the first window.
    The window only ever moves forward; timestamps before the current window
    start are stale and ignored.

    Args:
        period: Window length in seconds (or a timedelta), must be positive
        start: Optional anchor for the first window
    """

    def __init__(self, period: Period = 1.0, start: Optional[datetime] = None):
        self._period = timedelta(seconds=1)
        self.set_period(period)
        self._start: Optional[datetime] = None
        self._counter = BasicCounter()
        if start is not None:
            self.init(start)

    @property
    def period(self) -> timedelta:
        return self._period

    def set_period(self, period: Period):
        """Set the window length. Zero or negative periods are ignored."""
        value = _as_timedelta(period)
        if value <= timedelta(0):
            return
        self._period = value

    def init(self, timestamp: datetime):
        self._start = timestamp

    def is_initialized(self) -> bool:
        return self._start is not None

    def window(self) -> Tuple[datetime, datetime]:
        """Current half-open window ``[start, start + period)``."""
        if self._start is None:
            raise RuntimeError("IntervalCounter used before init()")
        return self._start, self._start + self._period

    def _advance_to(self, timestamp: datetime) -> bool:
        """Move the window until it contains ``timestamp``.

        Returns False (and leaves state untouched) when the counter is not
        initialized or the timestamp is stale.
        """
        if self._start is None or timestamp < self._start:
            return False
        # Equivalent to advancing one window at a time.
        skipped = (timestamp - self._start) // self._period
        self._start += self._period * skipped
        self._counter.total += skipped
        return True

    def update(self, timestamp: datetime):
        """Credit the window containing ``timestamp`` and move past it."""
        if not self._advance_to(timestamp):
            return
        self._counter.valid += 1
        self._start += self._period
        self._counter.total += 1

    def finish(self, timestamp: datetime):
        """Account for every empty window elapsed before ``timestamp``."""
        self._advance_to(timestamp)

    def read(self) -> BasicCounter:
        """Return the tally and reset it. The window position is kept."""
        result = BasicCounter(self._counter.valid, self._counter.total)
        self._counter.reset()
        return result

    def __repr__(self):
        return (f"IntervalCounter(period={self._period.total_seconds()}, "
                f"start={self._start!r}, valid={self._counter.valid}, "
                f"total={self._counter.total})")


# ---------------------------------------------------------------------------
# Compliance tallies
# ---------------------------------------------------------------------------

class _Tally:
    """Mixin: 32-bit unsigned fields, field-wise ``+`` and ``+=``."""

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if not isinstance(value, int) or not 0 <= value <= U32_MAX:
                raise ValueError(
                    f"{type(self).__name__}.{f.name} must be a 32-bit unsigned "
                    f"integer, got {value!r}")

    def __add__(self, other):
        if type(other) is not type(self):
            return NotImplemented
        return type(self)(*(getattr(self, f.name) + getattr(other, f.name)
                            for f in fields(self)))

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) == 0 for f in fields(self))

    @staticmethod
    def _ratio(numerator: int, denominator: int) -> Optional[float]:
        if denominator == 0:
            return None
        return numerator / denominator


@dataclass
class InOutCounter(_Tally):
    """Records received (in) vs. target reports produced (out)."""
    n_in: int = 0
    n_out: int = 0

    def ratio(self) -> Optional[float]:
        return self._ratio(self.n_out, self.n_in)


@dataclass
class UrCounter(_Tally):
    """Update rate."""
    n_etrp: int = 0     # expected target reports (windows elapsed)
    n_trp: int = 0      # windows with a target report

    def ratio(self) -> Optional[float]:
        return self._ratio(self.n_trp, self.n_etrp)


@dataclass
class PdCounter(_Tally):
    """Probability of detection."""
    n_trp: int = 0      # windows with a report of the target
    n_up: int = 0       # windows the target was present in

    def ratio(self) -> Optional[float]:
        return self._ratio(self.n_trp, self.n_up)


@dataclass
class PfdCounter(_Tally):
    """Probability of false detection (ED-117)."""
    n_ftr: int = 0      # false target reports
    n_tr: int = 0       # target reports

    def ratio(self) -> Optional[float]:
        return self._ratio(self.n_ftr, self.n_tr)


@dataclass
class PfdCounter2(_Tally):
    """Probability of false detection (ED-116).

    Reports in excess of one per updated window are false.
    """
    n_tr: int = 0       # target reports
    n_etr: int = 0      # expected target reports
    n_u: int = 0        # windows with at least one report

    def false_reports(self) -> int:
        return max(self.n_tr - self.n_u, 0)

    def ratio(self) -> Optional[float]:
        return self._ratio(self.false_reports(), self.n_tr)


@dataclass
class PidCounter(_Tally):
    """Probability of correct identification."""
    n_citr: int = 0     # correctly identified target reports
    n_itr: int = 0      # target reports with identification

    def ratio(self) -> Optional[float]:
        return self._ratio(self.n_citr, self.n_itr)


@dataclass
class PfidCounter(_Tally):
    """Probability of false identification."""
    n_eitr: int = 0     # erroneously identified target reports
    n_itr: int = 0      # target reports with identification

    def ratio(self) -> Optional[float]:
        return self._ratio(self.n_eitr, self.n_itr)


@dataclass
class PlgCounter(_Tally):
    """Probability of long gaps."""
    n_g: int = 0        # gaps longer than the threshold
    n_tr: int = 0       # target reports

    def ratio(self) -> Optional[float]:
        return self._ratio(self.n_g, self.n_tr)
