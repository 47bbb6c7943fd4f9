"""
surfmops DGPS Reference Reader
==============================

Reads the ground-truth trajectory of the DGPS-equipped reference vehicle
from a ``;``-separated text file. The header names the four columns and the
format of each as ``<name>_<format>``, in any order:

    datetime_unix | datetime_iso8601
    latitude_deg  | latitude_dms
    longitude_deg | longitude_dms
    gpsaltitude_ft | gpsaltitude_m

Example::

    datetime_iso8601;latitude_deg;longitude_deg;gpsaltitude_m
    2020-05-05T10:00:00.500Z;41.297078;2.078464;4.5

A header that is not exactly four recognized fields raises DgpsHeaderError
and no row is returned. Malformed rows are logged and skipped.

Author: surfmops contributors
License: AGPL-3.0-or-later
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, Iterable, List

from .geo import FT_TO_M

logger = logging.getLogger(__name__)

SEPARATOR = ";"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_DMS_RE = re.compile(
    r"""^\s*(?P<pre>[NSEW+-])?\s*
        (?P<deg>\d+(?:\.\d+)?)\s*[°:dD\s]\s*
        (?:(?P<min>\d+(?:\.\d+)?)\s*['’:mM\s]?\s*)?
        (?:(?P<sec>\d+(?:\.\d+)?)\s*(?:"|''|”|s|S)?\s*)?
        (?P<post>[NSEW])?\s*$""",
    re.VERBOSE,
)


class DgpsFormatError(ValueError):
    """Structurally invalid DGPS reference file."""


class DgpsHeaderError(DgpsFormatError):
    """Header is not exactly four recognized ``name_format`` fields."""


@dataclass(frozen=True)
class DgpsSample:
    timestamp: datetime     # UTC
    lat: float              # [deg]
    lon: float              # [deg]
    alt: float              # [m]


# ---------------------------------------------------------------------------
# Field parsers
# ---------------------------------------------------------------------------

def parse_unix_time(text: str) -> datetime:
    """Seconds since the epoch, fractional part kept to the microsecond."""
    try:
        seconds = Decimal(text.strip())
    except InvalidOperation as e:
        raise ValueError(f"invalid unix time {text!r}") from e
    micros = int((seconds * 1_000_000).to_integral_value())
    return _EPOCH + timedelta(microseconds=micros)


def parse_iso8601_time(text: str) -> datetime:
    """ISO-8601 timestamp; without offset the time is taken as UTC."""
    text = text.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    value = datetime.fromisoformat(text)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_degrees(text: str) -> float:
    return float(text.strip())


def parse_dms(text: str) -> float:
    """Degrees-minutes-seconds to signed decimal degrees.

    Accepts ``41°17'49.48"N``, ``41:17:49.48N``, ``N 41 17 49.48`` and
    ``-2 04 42.5``. South and west are negative.
    """
    m = _DMS_RE.match(text)
    if m is None:
        raise ValueError(f"invalid DMS angle {text!r}")
    value = (float(m.group("deg"))
             + float(m.group("min") or 0.0) / 60.0
             + float(m.group("sec") or 0.0) / 3600.0)
    hemispheres = {m.group("pre"), m.group("post")} - {None}
    if hemispheres & {"S", "W", "-"}:
        value = -value
    return value


def parse_feet(text: str) -> float:
    return float(text.strip()) * FT_TO_M


def parse_meters(text: str) -> float:
    return float(text.strip())


_FIELD_FORMATS: Dict[str, Dict[str, Callable]] = {
    "datetime": {"unix": parse_unix_time, "iso8601": parse_iso8601_time},
    "latitude": {"deg": parse_degrees, "dms": parse_dms},
    "longitude": {"deg": parse_degrees, "dms": parse_dms},
    "gpsaltitude": {"ft": parse_feet, "m": parse_meters},
}


def parse_header(line: str) -> Dict[str, tuple]:
    """Map each field name to ``(column index, parser)``.

    Raises:
        DgpsHeaderError: Header is not exactly the four known fields
    """
    columns = [c.strip() for c in line.strip().split(SEPARATOR)]
    if len(columns) != len(_FIELD_FORMATS):
        raise DgpsHeaderError(
            f"expected {len(_FIELD_FORMATS)} header fields, got {len(columns)}")

    layout: Dict[str, tuple] = {}
    for index, column in enumerate(columns):
        name, _, fmt = column.lower().partition("_")
        parser = _FIELD_FORMATS.get(name, {}).get(fmt)
        if parser is None or name in layout:
            raise DgpsHeaderError(f"unrecognized header field {column!r}")
        layout[name] = (index, parser)
    return layout


# ---------------------------------------------------------------------------
# Reader
# ---------------------------------------------------------------------------

def read_dgps_csv(lines: Iterable[str]) -> List[DgpsSample]:
    """Parse a DGPS reference file.

    Args:
        lines: File lines, header first (blank and ``#`` lines skipped)

    Returns:
        List[DgpsSample]: Samples in file order

    Raises:
        DgpsHeaderError: Malformed header, nothing is returned
    """
    layout = None
    samples: List[DgpsSample] = []
    for lineno, line in enumerate(lines, 1):
        text = line.strip()
        if not text or text.startswith("#"):
            continue
        if layout is None:
            layout = parse_header(text)
            continue

        parts = text.split(SEPARATOR)
        if len(parts) != len(layout):
            logger.warning("Skipping DGPS line %d: expected %d fields, got %d",
                           lineno, len(layout), len(parts))
            continue
        try:
            values = {name: parser(parts[index])
                      for name, (index, parser) in layout.items()}
        except ValueError as e:
            logger.warning("Skipping DGPS line %d: %s", lineno, e)
            continue
        samples.append(DgpsSample(timestamp=values["datetime"],
                                  lat=values["latitude"],
                                  lon=values["longitude"],
                                  alt=values["gpsaltitude"]))

    if layout is None:
        raise DgpsHeaderError("missing header")
    logger.info("Read %d DGPS samples", len(samples))
    return samples


def read_dgps_file(path: str) -> List[DgpsSample]:
    with open(path, "r", encoding="utf-8") as f:
        return read_dgps_csv(f)
