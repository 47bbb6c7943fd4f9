"""
surfmops Target Report Extraction
=================================

Turns decoded surveillance records into TargetReport objects:

  - drops service messages and records outside the supported categories
  - reads the discrete attributes from the record's data items
  - resolves the local Cartesian position (relative offset, SMR polar plot,
    or WGS-84 geodetic converted about the aerodrome reference point)
  - tags the aerodrome area through the injected locate-point callable
  - suppresses excluded Mode-S addresses (test transponders, vehicles)

Supported input:
    CAT010  SMR and MLAT target reports
    CAT021  ADS-B reports
    DGPS    ground-truth samples (see :mod:`surfmops.dgps`)

Usage::

    extractor = TargetReportExtractor(arp, smr_positions={7: (0.0, 0.0, 12.0)})
    extractor.set_locate_point_callback(aerodrome.locate_point)
    extractor.add_data(record)
    while extractor.has_pending_data():
        track_extractor.add_data(extractor.take_data())

Author: surfmops contributors
License: AGPL-3.0-or-later
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import replace
from datetime import timedelta
from typing import (Callable, Deque, Dict, Iterable, List, Mapping, Optional,
                    Sequence, Tuple)

from .counters import InOutCounter
from .geo import FT_TO_M, geodetic_to_enu, polar_to_cartesian
from .model import (Area, DataSourceId, GeoPoint, MessageType, NamedArea,
                    Record, SystemType, TargetReport, TargetType)

logger = logging.getLogger(__name__)

Position = Tuple[float, float, float]
LocatePoint = Callable[[Position, bool], NamedArea]

SUPPORTED_CATEGORIES = {
    SystemType.SMR: 10,
    SystemType.MLAT: 10,
    SystemType.ADSB: 21,
}

MODE_S_MAX = 0xFFFFFF

# CAT010 I020 TOT
_TOT_TARGET_TYPES = {
    0: TargetType.UNKNOWN,
    1: TargetType.AIRCRAFT,
    2: TargetType.GROUND_VEHICLE,
    3: TargetType.AIRCRAFT,     # helicopter
}


class _ItemError(ValueError):
    """A mandatory data item is missing or malformed."""


def ecat_target_type(ecat: int) -> TargetType:
    """CAT021 emitter category to target type (rotorcraft count as aircraft)."""
    if 1 <= ecat <= 5 or ecat == 10:
        return TargetType.AIRCRAFT
    if ecat in (20, 21):
        return TargetType.GROUND_VEHICLE
    return TargetType.UNKNOWN


def locate_point_default(position: Position, on_ground: bool) -> NamedArea:
    """Area locator used until a real one is injected."""
    return NamedArea(Area.OTHER if on_ground else Area.AIRBORNE)


def parse_mode_s(text: str) -> int:
    """Hexadecimal 24-bit address, e.g. ``"3C6586"``."""
    value = int(text.strip(), 16)
    if not 0 <= value <= MODE_S_MAX:
        raise ValueError(f"Mode-S address out of range: {text!r}")
    return value


# ---------------------------------------------------------------------------
# Data item access
# ---------------------------------------------------------------------------

def _mandatory(record: Record, item: str, name: str, conv: Callable = str):
    text = record.value(item, name)
    if text is None:
        raise _ItemError(f"missing {item}/{name}")
    try:
        return conv(text)
    except ValueError as e:
        raise _ItemError(f"invalid {item}/{name} {text!r}") from e


def _optional(record: Record, item: str, name: str, conv: Callable = str):
    text = record.value(item, name)
    if text is None:
        return None
    try:
        return conv(text)
    except ValueError:
        logger.debug("Ignoring invalid optional %s/%s %r", item, name, text)
        return None


def _octal(text: str) -> int:
    return int(text, 8)


def _flag(text: str) -> bool:
    value = int(text)
    if value not in (0, 1):
        raise ValueError(text)
    return bool(value)


def _ident(text: str) -> str:
    return text.strip()


def _real(text: str) -> float:
    value = float(text)
    if value != value:
        raise ValueError(text)
    return value


def _data_source(record: Record) -> DataSourceId:
    return DataSourceId(_mandatory(record, "I010", "SAC", int),
                        _mandatory(record, "I010", "SIC", int))


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------

class TargetReportExtractor:
    """Normalizes records into per-system queues of TargetReport.

    Args:
        arp: Aerodrome reference point, origin of the local frame
        smr_positions: SMR SIC -> (x, y, z) mount offset in the local frame
        excluded_addresses: Mode-S addresses to drop
    """

    def __init__(self, arp: GeoPoint,
                 smr_positions: Optional[Mapping[int, Sequence[float]]] = None,
                 excluded_addresses: Iterable[int] = ()):
        self._arp = arp
        self._smr_positions: Dict[int, Position] = {
            int(sic): tuple(float(c) for c in pos)
            for sic, pos in (smr_positions or {}).items()
        }
        self._excluded = frozenset(excluded_addresses)
        self._locate_point: LocatePoint = locate_point_default
        self._queues: Dict[SystemType, Deque[TargetReport]] = {
            sys_type: deque() for sys_type in SystemType
        }
        self._counters: Dict[SystemType, InOutCounter] = {
            sys_type: InOutCounter() for sys_type in SystemType
        }

    # -- configuration ------------------------------------------------------

    def set_locate_point_callback(self, locate_point: LocatePoint):
        self._locate_point = locate_point

    def set_excluded_addresses(self, addresses: Iterable[int]):
        self._excluded = frozenset(addresses)

    def load_excluded_addresses(self, lines: Iterable[str]) -> int:
        """Read hexadecimal Mode-S addresses, one per line.

        Empty lines and ``#`` comments are skipped.

        Returns:
            int: Number of addresses now excluded
        """
        addresses = set()
        for lineno, line in enumerate(lines, 1):
            text = line.strip()
            if not text or text.startswith("#"):
                continue
            try:
                addresses.add(parse_mode_s(text))
            except ValueError:
                logger.warning("Ignoring invalid excluded address %r on line %d",
                               text, lineno)
        self._excluded = frozenset(addresses)
        return len(self._excluded)

    @property
    def excluded_addresses(self) -> frozenset:
        return self._excluded

    # -- push / pull ---------------------------------------------------------

    def add_data(self, record: Record):
        """Ingest one decoded record."""
        if record.message_type is not MessageType.TARGET_REPORT:
            return
        sys_type = record.system_type
        if SUPPORTED_CATEGORIES.get(sys_type) != record.cat:
            logger.debug("Dropping CAT%03d record of system %s",
                         record.cat, sys_type.value)
            return

        counter = self._counters[sys_type]
        counter.n_in += 1

        try:
            if sys_type is SystemType.ADSB:
                attrs = self._parse_cat021(record)
            else:
                attrs = self._parse_cat010(record)
        except _ItemError as e:
            logger.debug("Skipping %s target report at %s: %s",
                         sys_type.value, record.timestamp.isoformat(), e)
            return

        mode_s = attrs.get("mode_s")
        if mode_s is not None and mode_s in self._excluded:
            logger.debug("Skipping %s target report of excluded address %06X",
                         sys_type.value, mode_s)
            return

        self._emit(TargetReport(sys_type=sys_type, timestamp=record.timestamp,
                                **attrs))

    def add_dgps_data(self, samples: Iterable, mode_s: int,
                      mode_3a: Optional[int] = None, ident: Optional[str] = None,
                      tod_offset: float = 0.0) -> int:
        """Turn ground-truth samples into DGPS target reports.

        Args:
            samples: Iterable of :class:`surfmops.dgps.DgpsSample`
            mode_s: Transponder address of the reference vehicle
            mode_3a: Optional Mode-3A code of the reference vehicle
            ident: Optional identification of the reference vehicle
            tod_offset: Seconds added to every sample timestamp

        Returns:
            int: Number of reports produced
        """
        offset = timedelta(seconds=tod_offset)
        count = 0
        for sample in samples:
            x, y, z = geodetic_to_enu(GeoPoint(sample.lat, sample.lon, sample.alt),
                                      self._arp)
            self._emit(TargetReport(
                ds_id=DataSourceId(0, 0),
                sys_type=SystemType.DGPS,
                timestamp=sample.timestamp + offset,
                track_number=1,
                mode_s=mode_s,
                mode_3a=mode_3a,
                ident=ident,
                target_type=TargetType.GROUND_VEHICLE,
                on_ground=True,
                x=float(x), y=float(y), z=float(z),
            ))
            count += 1
        return count

    def _emit(self, report: TargetReport):
        position = (report.x, report.y, report.z or 0.0)
        narea = self._locate_point(position, report.on_ground)
        report = replace(report, narea=narea)
        self._queues[report.sys_type].append(report)
        self._counters[report.sys_type].n_out += 1

    def target_reports(self, sys_type: SystemType) -> List[TargetReport]:
        """Snapshot of the reports still queued for ``sys_type``."""
        return list(self._queues[sys_type])

    def counters(self, sys_type: SystemType) -> InOutCounter:
        counter = self._counters[sys_type]
        return InOutCounter(counter.n_in, counter.n_out)

    def has_pending_data(self) -> bool:
        return any(self._queues.values())

    def take_data(self) -> Optional[TargetReport]:
        """Remove and return the next queued report, or None."""
        for queue in self._queues.values():
            if queue:
                return queue.popleft()
        return None

    # -- record parsing ------------------------------------------------------

    def _parse_cat010(self, record: Record) -> dict:
        sys_type = record.system_type
        ds_id = _data_source(record)
        attrs = {
            "ds_id": ds_id,
            "track_number": _mandatory(record, "I161", "TrkNb", int),
        }

        if sys_type is SystemType.SMR:
            attrs["on_ground"] = True
            attrs["x"], attrs["y"] = self._smr_position(record, ds_id.sic)
            return attrs

        attrs["on_ground"] = _mandatory(record, "I020", "GBS", _flag)
        attrs["x"], attrs["y"] = self._mlat_position(record)
        attrs["mode_s"] = _mandatory(record, "I220", "TAddr", parse_mode_s)
        attrs["mode_3a"] = _optional(record, "I060", "Mod3A", _octal)
        attrs["ident"] = _optional(record, "I245", "TId", _ident)
        tot = _optional(record, "I020", "TOT", int)
        if tot is not None:
            attrs["target_type"] = _TOT_TARGET_TYPES.get(tot, TargetType.UNKNOWN)
        return attrs

    def _smr_position(self, record: Record, sic: int) -> Tuple[float, float]:
        mount = self._smr_positions.get(sic, (0.0, 0.0, 0.0))
        if record.has("I042", "X") or record.has("I042", "Y"):
            x = _mandatory(record, "I042", "X", _real)
            y = _mandatory(record, "I042", "Y", _real)
        else:
            rho = _mandatory(record, "I040", "RHO", _real)
            theta = _mandatory(record, "I040", "THETA", _real)
            x, y = polar_to_cartesian(rho, theta)
        return x + mount[0], y + mount[1]

    def _mlat_position(self, record: Record) -> Tuple[float, float]:
        if record.has("I042", "X") or record.has("I042", "Y"):
            return (_mandatory(record, "I042", "X", _real),
                    _mandatory(record, "I042", "Y", _real))
        lat = _mandatory(record, "I041", "Lat", _real)
        lon = _mandatory(record, "I041", "Lon", _real)
        enu = geodetic_to_enu(GeoPoint(lat, lon, self._arp.alt), self._arp)
        return float(enu[0]), float(enu[1])

    def _parse_cat021(self, record: Record) -> dict:
        attrs = {
            "ds_id": _data_source(record),
            "track_number": _mandatory(record, "I161", "TrackN", int),
            "on_ground": _mandatory(record, "I040", "GBS", _flag),
            "mode_s": _mandatory(record, "I080", "TAddr", parse_mode_s),
            "mode_3a": _optional(record, "I070", "Mode3A", _octal),
            "ident": _optional(record, "I170", "TId", _ident),
            "ver": _optional(record, "I210", "VN", int),
            "pic": _optional(record, "I090", "PIC", int),
        }

        try:
            lat = _mandatory(record, "I131", "Lat", _real)
            lon = _mandatory(record, "I131", "Lon", _real)
        except _ItemError:
            lat = _mandatory(record, "I130", "Lat", _real)
            lon = _mandatory(record, "I130", "Lon", _real)

        height_ft = _optional(record, "I140", "geometric_height", _real)
        if height_ft is None:
            fl = _optional(record, "I145", "FL", _real)
            height_ft = fl * 100.0 if fl is not None else None
        alt = height_ft * FT_TO_M if height_ft is not None else self._arp.alt

        x, y, z = geodetic_to_enu(GeoPoint(lat, lon, alt), self._arp)
        attrs["x"], attrs["y"] = float(x), float(y)
        if height_ft is not None:
            attrs["z"] = float(z)

        ecat = _optional(record, "I020", "ECAT", int)
        if ecat is not None:
            attrs["target_type"] = ecat_target_type(ecat)
        return attrs
