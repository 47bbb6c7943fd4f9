"""
surfmops Aerodrome Areas
========================

Classifies a local Cartesian position into a NamedArea using polygons
(runways, taxiways, aprons, stands) given in the aerodrome local frame.

Airborne targets are always ``Area.AIRBORNE``. On the ground, the first
polygon containing the point wins, checked in priority order runway,
taxiway, apron, stand; anything else is ``Area.OTHER``.

Usage::

    aerodrome = Aerodrome.from_config(config.areas)
    extractor.set_locate_point_callback(aerodrome.locate_point)

Author: surfmops contributors
License: AGPL-3.0-or-later
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional, Sequence

import numpy as np

from .model import Area, NamedArea

PRIORITY = (Area.RUNWAY, Area.TAXIWAY, Area.APRON, Area.STAND)


@dataclass(eq=False)
class AreaPolygon:
    narea: NamedArea
    vertices: np.ndarray    # Nx2 [x, y]

    def __post_init__(self):
        self.vertices = np.asarray(self.vertices, dtype=float).reshape(-1, 2)
        if len(self.vertices) < 3:
            raise ValueError(f"polygon of {self.narea} needs at least 3 vertices")
        self._min = self.vertices.min(axis=0)
        self._max = self.vertices.max(axis=0)

    def contains(self, x: float, y: float) -> bool:
        """Even-odd ray casting test."""
        if not (self._min[0] <= x <= self._max[0] and self._min[1] <= y <= self._max[1]):
            return False
        xi, yi = self.vertices[:, 0], self.vertices[:, 1]
        xj, yj = np.roll(xi, 1), np.roll(yi, 1)
        crosses = (yi > y) != (yj > y)
        with np.errstate(divide="ignore", invalid="ignore"):
            x_cross = (xj - xi) * (y - yi) / (yj - yi) + xi
        return bool(np.count_nonzero(crosses & (x < x_cross)) % 2)


class Aerodrome:
    """Polygon based area locator."""

    def __init__(self, polygons: Iterable[AreaPolygon] = ()):
        self._polygons: List[AreaPolygon] = sorted(
            polygons, key=lambda p: PRIORITY.index(p.narea.area)
            if p.narea.area in PRIORITY else len(PRIORITY))

    @classmethod
    def from_config(cls, areas: Sequence[Mapping]) -> Aerodrome:
        """Build from ``[{"area": "runway", "name": "07L", "polygon": [[x, y], ...]}]``."""
        polygons = []
        for entry in areas:
            area = Area(str(entry["area"]).lower())
            name: Optional[str] = entry.get("name")
            polygons.append(AreaPolygon(NamedArea(area, name), entry["polygon"]))
        return cls(polygons)

    def __len__(self) -> int:
        return len(self._polygons)

    def locate_point(self, position: Sequence[float], on_ground: bool) -> NamedArea:
        if not on_ground:
            return NamedArea(Area.AIRBORNE)
        x, y = float(position[0]), float(position[1])
        if np.isnan(x) or np.isnan(y):
            return NamedArea(Area.OTHER)
        for polygon in self._polygons:
            if polygon.contains(x, y):
                return polygon.narea
        return NamedArea(Area.OTHER)
