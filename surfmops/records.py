"""
surfmops Record Input
=====================

Decoder boundary: reads surveillance records already decoded into
item/field text values, one JSON object per line::

    {"cat": 10, "items": {"I000": {"MsgTyp": "1"},
                          "I010": {"SAC": "0", "SIC": "7"},
                          "I140": {"ToD": "36000.25"}, ...}}

Each record is tagged with its system type (from category and SIC), its
message type and its absolute timestamp (configured date + time of day).
A line that is not a JSON object of that shape raises RecordFormatError.

Author: surfmops contributors
License: AGPL-3.0-or-later
"""

from __future__ import annotations

import json
import logging
from collections import deque
from datetime import date, datetime, time, timedelta, timezone
from typing import Deque, Dict, Iterable, Iterator, Mapping, Optional

from .model import MessageType, Record, SystemType

logger = logging.getLogger(__name__)

# ToD wrapping back by more than this is a day change [s]
DAY_ROLLOVER = 12 * 3600.0

_TOD_FIELDS = {
    10: (("I140", "ToD"),),
    21: (("I073", "time_reception_position"),
         ("I071", "time_applicability_position"),
         ("I030", "ToD")),
}


class RecordFormatError(ValueError):
    """Structurally invalid record line."""

    def __init__(self, message: str, lineno: Optional[int] = None):
        if lineno is not None:
            message = f"line {lineno}: {message}"
        super().__init__(message)
        self.lineno = lineno


def _stringify(items) -> Dict[str, Dict[str, str]]:
    if not isinstance(items, dict):
        raise ValueError("'items' must be an object")
    result = {}
    for item, fields in items.items():
        if not isinstance(fields, dict):
            raise ValueError(f"item {item!r} must be an object")
        result[str(item)] = {str(k): str(v) for k, v in fields.items()}
    return result


class RecordReader:
    """JSON-lines record decoder with the push/pull stage contract.

    Args:
        day: Date of the recording (time of day is relative to it, UTC)
        sics: System type -> SIC of its station (SMR, MLAT, ADSB)
    """

    def __init__(self, day: date, sics: Mapping[SystemType, int]):
        self._midnight = datetime.combine(day, time(0), tzinfo=timezone.utc)
        self._sics = dict(sics)
        self._queue: Deque[Record] = deque()
        self._lineno = 0
        self._last_tod: Optional[float] = None
        self._day_offset = timedelta(0)

    def add_data(self, line: str):
        """Decode one line. Blank lines are ignored.

        Raises:
            RecordFormatError: The line is not a well-formed record
        """
        self._lineno += 1
        if not line.strip():
            return
        try:
            obj = json.loads(line)
            if not isinstance(obj, dict):
                raise ValueError("record must be a JSON object")
            cat = int(obj["cat"])
            items = _stringify(obj.get("items", {}))
        except (ValueError, KeyError, TypeError) as e:
            raise RecordFormatError(str(e), self._lineno) from e
        self._queue.append(self._classify(cat, items))

    def has_pending_data(self) -> bool:
        return bool(self._queue)

    def take_data(self) -> Optional[Record]:
        return self._queue.popleft() if self._queue else None

    def _classify(self, cat: int, items: Dict[str, Dict[str, str]]) -> Record:
        sys_type = self._system_type(cat, items)
        msg_type = self._message_type(cat, items)
        timestamp = self._timestamp(cat, items)
        if timestamp is None:
            logger.debug("CAT%03d record on line %d has no time of day",
                         cat, self._lineno)
            timestamp = self._midnight + self._day_offset
            msg_type = MessageType.UNKNOWN
        return Record(cat=cat, system_type=sys_type, message_type=msg_type,
                      timestamp=timestamp, items=items)

    def _system_type(self, cat: int, items) -> SystemType:
        try:
            sic = int(items["I010"]["SIC"])
        except (KeyError, ValueError):
            return SystemType.UNKNOWN
        if cat == 10:
            for sys_type in (SystemType.SMR, SystemType.MLAT):
                if self._sics.get(sys_type) == sic:
                    return sys_type
        elif cat == 21 and self._sics.get(SystemType.ADSB) == sic:
            return SystemType.ADSB
        return SystemType.UNKNOWN

    @staticmethod
    def _message_type(cat: int, items) -> MessageType:
        if cat == 21:
            return MessageType.TARGET_REPORT
        if cat == 10:
            msg_typ = items.get("I000", {}).get("MsgTyp")
            if msg_typ is None:
                return MessageType.UNKNOWN
            return (MessageType.TARGET_REPORT if msg_typ.strip() == "1"
                    else MessageType.SERVICE_MESSAGE)
        return MessageType.UNKNOWN

    def _timestamp(self, cat: int, items) -> Optional[datetime]:
        for item, name in _TOD_FIELDS.get(cat, ()):
            text = items.get(item, {}).get(name)
            if text is None:
                continue
            try:
                tod = float(text)
            except ValueError:
                return None
            if self._last_tod is not None and self._last_tod - tod > DAY_ROLLOVER:
                self._day_offset += timedelta(days=1)
            self._last_tod = tod
            return self._midnight + self._day_offset + timedelta(seconds=tod)
        return None


def read_records(lines: Iterable[str], day: date,
                 sics: Mapping[SystemType, int]) -> Iterator[Record]:
    """Generator over the records of ``lines``.

    Raises:
        RecordFormatError: On the first malformed line
    """
    reader = RecordReader(day, sics)
    for line in lines:
        reader.add_data(line)
        while reader.has_pending_data():
            yield reader.take_data()
