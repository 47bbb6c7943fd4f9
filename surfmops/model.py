"""
surfmops Data Model
===================

Value types shared by every stage of the evaluation pipeline:

  - SystemType / MessageType / TargetType / Area enumerations
  - NamedArea (aerodrome zone plus optional sub-identifier)
  - DataSourceId (SAC/SIC pair)
  - Record (decoded surveillance record, loose string-keyed items)
  - TargetReport (canonical normalized position report)

Author: surfmops contributors
License: AGPL-3.0-or-later
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, NamedTuple, Optional

# Two reports closer than this are considered at the same position [m]
POSITION_TOLERANCE = 1.0


class SystemType(Enum):
    """Surveillance source. Declaration order is the track release order."""
    SMR = "smr"
    MLAT = "mlat"
    ADSB = "adsb"
    DGPS = "dgps"
    UNKNOWN = "unknown"


class MessageType(Enum):
    TARGET_REPORT = "target_report"
    SERVICE_MESSAGE = "service_message"
    UNKNOWN = "unknown"


class TargetType(Enum):
    AIRCRAFT = "aircraft"
    GROUND_VEHICLE = "ground_vehicle"
    UNKNOWN = "unknown"


class Area(Enum):
    RUNWAY = "runway"
    TAXIWAY = "taxiway"
    APRON = "apron"
    STAND = "stand"
    AIRBORNE = "airborne"
    OTHER = "other"


class ProcessingMode(Enum):
    """Evaluation against DGPS ground truth, or among sensors themselves."""
    REFERENCE = "reference"
    COMPARATIVE = "comparative"


@dataclass(frozen=True)
class NamedArea:
    """Aerodrome zone, e.g. ``NamedArea(Area.RUNWAY, "07L/25R")``."""
    area: Area = Area.OTHER
    name: Optional[str] = None

    def __str__(self) -> str:
        if self.name:
            return f"{self.area.value}:{self.name}"
        return self.area.value


class DataSourceId(NamedTuple):
    sac: int
    sic: int


class GeoPoint(NamedTuple):
    """WGS-84 geodetic point (degrees, degrees, meters)."""
    lat: float
    lon: float
    alt: float = 0.0


@dataclass
class Record:
    """Decoded surveillance record as handed over by the decoder.

    ``items`` maps an item name (``"I010"``) to its fields (``{"SAC": "0"}``),
    all values kept as text. Only the target report extractor reads it.
    """
    cat: int
    system_type: SystemType
    message_type: MessageType
    timestamp: datetime
    items: Dict[str, Dict[str, str]] = field(default_factory=dict)

    def has(self, item: str, name: Optional[str] = None) -> bool:
        fields = self.items.get(item)
        if fields is None:
            return False
        return name is None or name in fields

    def value(self, item: str, name: str) -> Optional[str]:
        """Return the raw text of ``item/name``, or None when absent."""
        return self.items.get(item, {}).get(name)


@dataclass(frozen=True, eq=False)
class TargetReport:
    """One normalized position report.

    Discrete fields compare exactly; positions compare equal within
    ``POSITION_TOLERANCE`` meters (absent z counts as 0).
    """
    ds_id: DataSourceId
    sys_type: SystemType
    timestamp: datetime
    track_number: int
    mode_s: Optional[int] = None
    mode_3a: Optional[int] = None
    ident: Optional[str] = None
    target_type: Optional[TargetType] = None
    on_ground: bool = True
    x: float = math.nan                   # East [m]
    y: float = math.nan                   # North [m]
    z: Optional[float] = None             # Up [m]
    narea: NamedArea = NamedArea()
    ver: Optional[int] = None             # ADS-B version number
    pic: Optional[int] = None             # ADS-B position integrity category

    def _discrete(self) -> tuple:
        return (self.ds_id, self.sys_type, self.timestamp, self.track_number,
                self.mode_s, self.mode_3a, self.ident, self.target_type,
                self.on_ground, self.narea, self.ver, self.pic)

    def _same_position(self, other: TargetReport) -> bool:
        deltas = []
        for a, b in ((self.x, other.x), (self.y, other.y)):
            if math.isnan(a) or math.isnan(b):
                if math.isnan(a) != math.isnan(b):
                    return False
                deltas.append(0.0)  # both unknown
            else:
                deltas.append(a - b)
        deltas.append((self.z or 0.0) - (other.z or 0.0))
        return math.sqrt(sum(d * d for d in deltas)) <= POSITION_TOLERANCE

    def __eq__(self, other):
        if not isinstance(other, TargetReport):
            return NotImplemented
        return self._discrete() == other._discrete() and self._same_position(other)

    def __hash__(self):
        return hash(self._discrete())
