"""Georeferencing for 3D models.

A model's local frame is tied to the globe by a stored origin
(``origin_lat``, ``origin_lon``, optional ``origin_altitude``). Conversions use
a flat-earth, small-area approximation around that origin: local X is east,
local Y is north, both in metres, and one constant Earth radius is used for
every CRS. This is not a CRS transform; it is only accurate for building or
site-scale models.

The forward and inverse conversions share the same linear approximation, so
``to_local(o, to_geographic(o, p)) == p`` up to float rounding for any
non-polar origin.

Near the poles the cosine of the origin latitude goes to zero and longitude
offsets become unbounded. That arithmetic is left unguarded: at exactly
+/-90 degrees IEEE cosine is ~6e-17, so results are huge but finite.
"""

import math
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

from core.cache import QueryCache, model_list_prefix
from core.database import Database
from core.logging import get_logger
from models.database import Model3D

logger = get_logger(__name__)

EARTH_RADIUS = 6378137.0  # metres, WGS84 equatorial

GEOREFERENCING_FIELDS = ("crs", "origin_lat", "origin_lon", "origin_altitude", "transform_matrix")


@dataclass(frozen=True)
class GeoOrigin:
    lat: Optional[float]
    lon: Optional[float]
    altitude: Optional[float] = None

    @property
    def is_georeferenced(self) -> bool:
        return self.lat is not None and self.lon is not None

    @classmethod
    def from_model(cls, model: Model3D) -> "GeoOrigin":
        return cls(lat=model.origin_lat, lon=model.origin_lon, altitude=model.origin_altitude)


@dataclass(frozen=True)
class Point3D:
    x: float
    y: float
    z: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class GeoCoordinate:
    latitude: float
    longitude: float
    altitude: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def to_geographic(origin: GeoOrigin, point: Point3D) -> Optional[GeoCoordinate]:
    """Convert a model-local point to latitude/longitude/altitude.

    Returns None when the origin is not georeferenced. Without an origin
    altitude the local Z is taken as absolute altitude.
    """
    if not origin.is_georeferenced:
        return None

    lat_offset = math.degrees(point.y / EARTH_RADIUS)
    lon_offset = math.degrees(
        _divide(point.x, EARTH_RADIUS * math.cos(math.radians(origin.lat)))
    )
    altitude = origin.altitude + point.z if origin.altitude is not None else point.z

    return GeoCoordinate(
        latitude=origin.lat + lat_offset,
        longitude=origin.lon + lon_offset,
        altitude=altitude,
    )


def to_local(origin: GeoOrigin, geo: GeoCoordinate) -> Optional[Point3D]:
    """Convert latitude/longitude/altitude to a model-local point.

    Inverse of to_geographic; returns None when the origin is not georeferenced.
    """
    if not origin.is_georeferenced:
        return None

    lat_diff = geo.latitude - origin.lat
    lon_diff = geo.longitude - origin.lon

    y = math.radians(lat_diff) * EARTH_RADIUS
    x = math.radians(lon_diff) * EARTH_RADIUS * math.cos(math.radians(origin.lat))
    z = geo.altitude - origin.altitude if origin.altitude is not None else geo.altitude

    return Point3D(x=x, y=y, z=z)


def _divide(numerator: float, denominator: float) -> float:
    # IEEE semantics instead of ZeroDivisionError
    if denominator == 0.0:
        if numerator == 0.0:
            return math.nan
        return math.copysign(math.inf, numerator)
    return numerator / denominator


def georeferencing_dict(model: Model3D) -> Dict[str, Any]:
    data = {name: getattr(model, name) for name in GEOREFERENCING_FIELDS}
    data["georeferenced"] = model.is_georeferenced
    return data


class GeoreferencingService:
    """Reads, updates and converts against a model's stored origin."""

    def __init__(self, database: Database, cache: QueryCache):
        self.database = database
        self.cache = cache

    async def get_origin(self, model_id: str, user_id: str) -> Optional[GeoOrigin]:
        model = await self.database.find_model_by_id(model_id, user_id)
        return GeoOrigin.from_model(model) if model else None

    async def get_georeferencing(self, model_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        model = await self.database.find_model_by_id(model_id, user_id)
        return georeferencing_dict(model) if model else None

    async def update_georeferencing(self, model_id: str, user_id: str,
                                    crs: Optional[str] = None,
                                    origin_lat: Optional[float] = None,
                                    origin_lon: Optional[float] = None,
                                    origin_altitude: Optional[float] = None,
                                    transform_matrix: Optional[List[float]] = None) -> Optional[Dict[str, Any]]:
        """Overwrite every georeferencing field of one owned model.

        Omitted values clear the stored field. A model owned by someone else
        returns None, same as a missing one.
        """
        fields = dict(zip(
            GEOREFERENCING_FIELDS,
            (crs, origin_lat, origin_lon, origin_altitude, transform_matrix),
        ))
        model = await self.database.update_model_fields(model_id, user_id, fields)
        if not model:
            return None

        self.cache.invalidate(model_list_prefix(user_id))
        logger.info("Georeferencing updated", model_id=model_id,
                    georeferenced=model.is_georeferenced, crs=model.crs)
        return georeferencing_dict(model)

    async def convert_to_geographic(self, model_id: str, user_id: str,
                                    point: Point3D) -> Optional[GeoCoordinate]:
        origin = await self.get_origin(model_id, user_id)
        return to_geographic(origin, point) if origin else None

    async def convert_to_local(self, model_id: str, user_id: str,
                               geo: GeoCoordinate) -> Optional[Point3D]:
        origin = await self.get_origin(model_id, user_id)
        return to_local(origin, geo) if origin else None

    async def annotation_coordinates(self, model_id: str, user_id: str,
                                     point: Point3D) -> Dict[str, Any]:
        """Local position plus geographic position when the model has an origin."""
        geographic = await self.convert_to_geographic(model_id, user_id, point)
        return {
            "position_x": point.x,
            "position_y": point.y,
            "position_z": point.z,
            "latitude": geographic.latitude if geographic else None,
            "longitude": geographic.longitude if geographic else None,
            "altitude": geographic.altitude if geographic else None,
            "georeferenced": geographic is not None,
        }
