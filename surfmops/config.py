"""
surfmops Configuration
======================

YAML configuration, read once at startup. Example::

    date: 2020-05-05
    arp: {lat: 41.297078, lon: 2.078464, alt: 4.0}
    smr:
      sic: 7
      positions: {7: [-410.0, 1205.0, 32.0]}
    mlat: {sic: 107}
    adsb: {sic: 219}
    mode: comparative            # or "reference" (default when dgps is set)
    excluded_addresses: excluded.txt
    mops:
      ed116: {update_rate: 1.0}  # Hz
      ed117:
        update_rate: {default: 1.0, runway: 2.0, stand: 0.2}
      silence_period: 5.0        # s
      pd_period: {runway: 1.0, taxiway: 2.0, apron: 5.0, stand: 5.0}
    dgps:
      file: dgps.csv
      mode_s: "3C6586"
      mode_3a: "7000"
      ident: "FOLLOWME"
      tod_offset: 0.0
    aerodrome:
      areas:
        - {area: runway, name: 07L/25R, polygon: [[0, 0], [3000, 0], [3000, 60], [0, 60]]}
    logging: {level: INFO}

Missing mandatory values (``date``, ``arp``, the three SICs, ``dgps.mode_s``
when a ``dgps`` section exists) raise MissingConfigError, unusable ones
(SIC out of range, unknown area or degenerate polygon in ``aerodrome.areas``)
raise ConfigError. Present but invalid optional values emit a ConfigWarning
and fall back to the default. Mode-S addresses are always hexadecimal and
Mode-3A codes always octal, even when YAML reads them as integers.

Author: surfmops contributors
License: AGPL-3.0-or-later
"""

from __future__ import annotations

import logging
import os
import warnings
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from .model import Area, GeoPoint, ProcessingMode, SystemType
from .perf import DEFAULT_PD_PERIODS, EvaluationPeriods

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.path.join(os.path.expanduser("~"), ".config",
                                   "surfmops", "surfmops.yaml")

DEFAULT_UPDATE_RATE_HZ = 1.0
DEFAULT_SILENCE_PERIOD = 5.0
MAX_TOD_OFFSET = 86400.0
SIC_MAX = 255
MODE_S_MAX = 0xFFFFFF

_MISSING = object()


class ConfigError(Exception):
    """Unusable configuration."""


class MissingConfigError(ConfigError):
    """A mandatory configuration value is absent."""


class ConfigWarning(UserWarning):
    """A configuration value was invalid and replaced by its default."""


@dataclass
class DgpsConfig:
    mode_s: int
    mode_3a: Optional[int] = None
    ident: Optional[str] = None
    tod_offset: float = 0.0
    file: Optional[str] = None


@dataclass
class LoggingConfig:
    level: str = "WARNING"
    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class Config:
    date: date
    arp: GeoPoint
    smr_sic: int
    mlat_sic: int
    adsb_sic: int
    mode: ProcessingMode = ProcessingMode.COMPARATIVE
    smr_positions: Dict[int, Tuple[float, float, float]] = field(default_factory=dict)
    ed116_update_rate: float = DEFAULT_UPDATE_RATE_HZ
    ed117_update_rate: float = DEFAULT_UPDATE_RATE_HZ
    ed116_area_update_rates: Dict[Area, float] = field(default_factory=dict)
    ed117_area_update_rates: Dict[Area, float] = field(default_factory=dict)
    silence_period: float = DEFAULT_SILENCE_PERIOD
    pd_periods: Dict[Area, float] = field(default_factory=lambda: dict(DEFAULT_PD_PERIODS))
    excluded_addresses: Optional[str] = None
    dgps: Optional[DgpsConfig] = None
    areas: List[dict] = field(default_factory=list)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def sics(self) -> Dict[SystemType, int]:
        return {
            SystemType.SMR: self.smr_sic,
            SystemType.MLAT: self.mlat_sic,
            SystemType.ADSB: self.adsb_sic,
        }

    def evaluation_periods(self) -> EvaluationPeriods:
        """Immutable snapshot of the evaluation parameters."""
        return EvaluationPeriods(
            ed116_update_period=1.0 / self.ed116_update_rate,
            ed117_update_period=1.0 / self.ed117_update_rate,
            ed116_area_update_periods={
                area: 1.0 / rate for area, rate in self.ed116_area_update_rates.items()},
            ed117_area_update_periods={
                area: 1.0 / rate for area, rate in self.ed117_area_update_rates.items()},
            silence_period=self.silence_period,
            pd_periods=dict(self.pd_periods),
        )


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------

def _lookup(data: Mapping, path: str, default: Any = _MISSING) -> Any:
    node: Any = data
    for key in path.split("."):
        if not isinstance(node, Mapping) or key not in node or node[key] is None:
            return default
        node = node[key]
    return node


def _require(data: Mapping, path: str) -> Any:
    value = _lookup(data, path)
    if value is _MISSING:
        raise MissingConfigError(f"missing mandatory configuration value '{path}'")
    return value


def _warn(path: str, value: Any, default: Any):
    warnings.warn(f"Invalid value {value!r} for '{path}', using default {default!r}",
                  ConfigWarning, stacklevel=3)


def _positive(data: Mapping, path: str, default: float) -> float:
    value = _lookup(data, path, default)
    try:
        number = float(value)
    except (TypeError, ValueError):
        _warn(path, value, default)
        return default
    if not number > 0:
        _warn(path, value, default)
        return default
    return number


def _sic(data: Mapping, path: str) -> int:
    value = _require(data, path)
    try:
        sic = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"invalid SIC {value!r} for '{path}'") from None
    if not 0 <= sic <= SIC_MAX:
        raise ConfigError(f"SIC {sic} for '{path}' out of range 0..{SIC_MAX}")
    return sic


def _code(value: Any, base: int) -> int:
    """Integer code written either as text in ``base`` or as digits."""
    return int(str(value).strip(), base)


def _resolve(path: Optional[str], base_dir: Optional[str]) -> Optional[str]:
    if path is None or base_dir is None or os.path.isabs(path):
        return path
    return os.path.join(base_dir, path)


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

def _parse_date(data: Mapping) -> date:
    value = _require(data, "date")
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ConfigError(f"invalid date {value!r}") from None


def _parse_arp(data: Mapping) -> GeoPoint:
    arp = _require(data, "arp")
    try:
        return GeoPoint(float(_require(arp, "lat")), float(_require(arp, "lon")),
                        float(_lookup(arp, "alt", 0.0)))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid aerodrome reference point: {e}") from None


def _parse_smr_positions(data: Mapping) -> Dict[int, Tuple[float, float, float]]:
    positions = {}
    for sic, pos in (_lookup(data, "smr.positions", {}) or {}).items():
        try:
            x, y, *rest = (float(c) for c in pos)
            positions[int(sic)] = (x, y, rest[0] if rest else 0.0)
        except (TypeError, ValueError):
            _warn(f"smr.positions.{sic}", pos, "ignored")
    return positions


def _parse_update_rates(data: Mapping, standard: str) -> Tuple[float, Dict[Area, float]]:
    """``mops.<standard>.update_rate``: one rate, or ``default`` plus per-area rates."""
    path = f"mops.{standard}.update_rate"
    value = _lookup(data, path, None)
    if not isinstance(value, Mapping):
        return _positive(data, path, DEFAULT_UPDATE_RATE_HZ), {}

    default = _positive(data, f"{path}.default", DEFAULT_UPDATE_RATE_HZ)
    rates = {}
    for name in value:
        if str(name).lower() == "default":
            continue
        try:
            area = Area(str(name).lower())
        except ValueError:
            _warn(f"{path}.{name}", name, "ignored")
            continue
        rates[area] = _positive(data, f"{path}.{name}", default)
    return default, rates


def _parse_areas(data: Mapping) -> List[dict]:
    """Aerodrome polygons, checked so that the area locator can be built."""
    areas = _lookup(data, "aerodrome.areas", []) or []
    if not isinstance(areas, list):
        raise ConfigError("'aerodrome.areas' must be a list")
    for index, entry in enumerate(areas):
        where = f"aerodrome.areas[{index}]"
        if not isinstance(entry, Mapping):
            raise ConfigError(f"'{where}' must be a mapping")
        try:
            Area(str(_require(entry, "area")).lower())
        except ValueError:
            raise ConfigError(f"unknown area {entry['area']!r} in '{where}'") from None
        polygon = _require(entry, "polygon")
        try:
            vertices = [(float(x), float(y)) for x, y in polygon]
        except (TypeError, ValueError):
            raise ConfigError(f"invalid polygon vertices in '{where}'") from None
        if len(vertices) < 3:
            raise ConfigError(f"polygon in '{where}' needs at least 3 vertices")
    return list(areas)


def _parse_pd_periods(data: Mapping) -> Dict[Area, float]:
    periods = dict(DEFAULT_PD_PERIODS)
    for name, value in (_lookup(data, "mops.pd_period", {}) or {}).items():
        try:
            area = Area(str(name).lower())
        except ValueError:
            _warn(f"mops.pd_period.{name}", name, "ignored")
            continue
        periods[area] = _positive(data, f"mops.pd_period.{name}", periods[area])
    return periods


def _parse_dgps(data: Mapping, base_dir: Optional[str]) -> Optional[DgpsConfig]:
    section = _lookup(data, "dgps", None)
    if section is None:
        return None
    value = _require(data, "dgps.mode_s")
    try:
        mode_s = _code(value, 16)
    except ValueError:
        raise ConfigError(f"invalid DGPS Mode-S address {value!r}") from None
    if not 0 <= mode_s <= MODE_S_MAX:
        raise ConfigError(f"DGPS Mode-S address {mode_s:#x} out of range")

    mode_3a = _lookup(data, "dgps.mode_3a", None)
    if mode_3a is not None:
        try:
            mode_3a = _code(mode_3a, 8)
        except ValueError:
            _warn("dgps.mode_3a", mode_3a, None)
            mode_3a = None

    ident = _lookup(data, "dgps.ident", None)
    tod_offset = _lookup(data, "dgps.tod_offset", 0.0)
    try:
        tod_offset = float(tod_offset)
        if abs(tod_offset) > MAX_TOD_OFFSET:
            raise ValueError(tod_offset)
    except (TypeError, ValueError):
        _warn("dgps.tod_offset", tod_offset, 0.0)
        tod_offset = 0.0

    return DgpsConfig(mode_s=mode_s, mode_3a=mode_3a,
                      ident=str(ident).strip() if ident is not None else None,
                      tod_offset=tod_offset,
                      file=_resolve(_lookup(data, "dgps.file", None), base_dir))


def _parse_mode(data: Mapping, dgps: Optional[DgpsConfig]) -> ProcessingMode:
    default = ProcessingMode.REFERENCE if dgps is not None else ProcessingMode.COMPARATIVE
    value = _lookup(data, "mode", None)
    if value is None:
        return default
    try:
        mode = ProcessingMode(str(value).lower())
    except ValueError:
        _warn("mode", value, default.value)
        return default
    if mode is ProcessingMode.REFERENCE and dgps is None:
        raise MissingConfigError("reference mode requires a 'dgps' section")
    return mode


def parse_config(data: Mapping, base_dir: Optional[str] = None) -> Config:
    """Build a Config from an already parsed YAML mapping.

    Args:
        data: Parsed YAML document
        base_dir: Directory relative file names are resolved against

    Raises:
        MissingConfigError: A mandatory value is absent
        ConfigError: A mandatory value is unusable
    """
    if not isinstance(data, Mapping):
        raise ConfigError("configuration must be a mapping")

    dgps = _parse_dgps(data, base_dir)
    ed116_rate, ed116_area_rates = _parse_update_rates(data, "ed116")
    ed117_rate, ed117_area_rates = _parse_update_rates(data, "ed117")
    log_section = _lookup(data, "logging", {}) or {}
    config = Config(
        date=_parse_date(data),
        arp=_parse_arp(data),
        smr_sic=_sic(data, "smr.sic"),
        mlat_sic=_sic(data, "mlat.sic"),
        adsb_sic=_sic(data, "adsb.sic"),
        mode=_parse_mode(data, dgps),
        smr_positions=_parse_smr_positions(data),
        ed116_update_rate=ed116_rate,
        ed117_update_rate=ed117_rate,
        ed116_area_update_rates=ed116_area_rates,
        ed117_area_update_rates=ed117_area_rates,
        silence_period=_positive(data, "mops.silence_period", DEFAULT_SILENCE_PERIOD),
        pd_periods=_parse_pd_periods(data),
        excluded_addresses=_resolve(_lookup(data, "excluded_addresses", None), base_dir),
        dgps=dgps,
        areas=_parse_areas(data),
        logging=LoggingConfig(
            level=str(log_section.get("level", LoggingConfig.level)).upper(),
            format=str(log_section.get("format", LoggingConfig.format)),
        ),
    )
    logger.debug("Configuration: %s", config)
    return config


def load_config(path: str = DEFAULT_CONFIG_PATH) -> Config:
    """Read and validate the YAML configuration file at ``path``."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise MissingConfigError(f"cannot read configuration file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e
    return parse_config(data or {}, base_dir=os.path.dirname(os.path.abspath(path)))


def setup_logging(config: LoggingConfig):
    level = getattr(logging, config.level, None)
    if not isinstance(level, int):
        _warn("logging.level", config.level, "WARNING")
        level = logging.WARNING
    logging.basicConfig(level=level, format=config.format)
