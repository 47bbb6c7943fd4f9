"""
surfmops Geodesy
================

Conversions between the frames the surveillance sources report in and the
aerodrome local Cartesian frame used everywhere downstream:

  - WGS-84 geodetic (lat, lon, alt) -> ECEF
  - ECEF -> local ENU about the aerodrome reference point (ARP)
  - SMR polar (range, azimuth clockwise from north) -> local x/y

Author: surfmops contributors
License: AGPL-3.0-or-later
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

from .model import GeoPoint

# ===== WGS-84 CONSTANTS =====
WGS84_A = 6378137.0                     # Semi-major axis [m]
WGS84_F = 1.0 / 298.257223563           # Flattening
WGS84_B = WGS84_A * (1 - WGS84_F)       # Semi-minor axis [m]
WGS84_E2 = 2 * WGS84_F - WGS84_F ** 2   # First eccentricity squared

FT_TO_M = 0.3048


def geodetic_to_ecef(lat_deg: float, lon_deg: float, alt_m: float) -> np.ndarray:
    """WGS-84 geodetic to ECEF [x, y, z] in meters."""
    lat = np.radians(lat_deg)
    lon = np.radians(lon_deg)
    sin_lat = np.sin(lat)
    n = WGS84_A / np.sqrt(1 - WGS84_E2 * sin_lat ** 2)

    return np.array([
        (n + alt_m) * np.cos(lat) * np.cos(lon),
        (n + alt_m) * np.cos(lat) * np.sin(lon),
        (n * (1 - WGS84_E2) + alt_m) * sin_lat,
    ])


def _enu_rotation(ref: GeoPoint) -> np.ndarray:
    """Rotation matrix ECEF -> ENU at ``ref``."""
    lat = np.radians(ref.lat)
    lon = np.radians(ref.lon)
    sin_lat, cos_lat = np.sin(lat), np.cos(lat)
    sin_lon, cos_lon = np.sin(lon), np.cos(lon)

    return np.array([
        [-sin_lon,            cos_lon,            0.0],
        [-sin_lat * cos_lon, -sin_lat * sin_lon,  cos_lat],
        [cos_lat * cos_lon,   cos_lat * sin_lon,  sin_lat],
    ])


def geodetic_to_enu(point: GeoPoint, ref: GeoPoint) -> np.ndarray:
    """Geodetic point to local [east, north, up] about ``ref`` in meters.

    Args:
        point: Target position
        ref: Aerodrome reference point

    Returns:
        np.ndarray: [x, y, z] local Cartesian
    """
    diff = (geodetic_to_ecef(point.lat, point.lon, point.alt)
            - geodetic_to_ecef(ref.lat, ref.lon, ref.alt))
    return _enu_rotation(ref) @ diff


def polar_to_cartesian(rho: float, theta_deg: float) -> Tuple[float, float]:
    """SMR plot polar coordinates to local x (east) / y (north).

    Args:
        rho: Slant range [m]
        theta_deg: Azimuth [deg] from north, clockwise
    """
    theta = np.radians(theta_deg)
    return float(rho * np.sin(theta)), float(rho * np.cos(theta))


def planar_distance(ax, ay, bx, by):
    """Horizontal distance, element-wise for numpy arrays."""
    return np.hypot(np.subtract(ax, bx), np.subtract(ay, by))
