"""
On-site visit fee and route collaborator.

Driving distance comes from OpenRouteService and is cached in Redis for a
day per (origin, destination) pair. Visits inside the free zone (Metro
Manila) cost nothing; everywhere else pays the base fee plus a per-km rate
for distance beyond the covered radius.
"""

import hashlib
import logging
import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

import httpx

from ..cache import Cache, cache
from ..config import (
    ORS_API_KEY,
    ORS_DIRECTIONS_URL,
    ROUTE_CACHE_TTL_SECONDS,
    SHOP_LATITUDE,
    SHOP_LONGITUDE,
    VISIT_BASE_COVERED_KM,
    VISIT_BASE_FEE,
    VISIT_MAX_DISTANCE_KM,
    VISIT_PER_KM_RATE,
)
from ..shared.errors import AppError, BadRequestError, ErrorCode

logger = logging.getLogger(__name__)

# Approximate Metro Manila boundary as (lat, lng) vertices
FREE_ZONE_BOUNDARY = (
    (14.780, 120.960),
    (14.790, 121.020),
    (14.760, 121.110),
    (14.630, 121.130),
    (14.560, 121.110),
    (14.480, 121.070),
    (14.380, 121.050),
    (14.350, 120.990),
    (14.450, 120.970),
    (14.520, 120.980),
    (14.600, 120.940),
    (14.680, 120.910),
)


@dataclass(frozen=True)
class LatLng:
    lat: float
    lng: float


@dataclass(frozen=True)
class FeeSettings:
    base_fee: float = VISIT_BASE_FEE
    base_covered_km: float = VISIT_BASE_COVERED_KM
    per_km_rate: float = VISIT_PER_KM_RATE
    max_distance_km: float = VISIT_MAX_DISTANCE_KM


def point_in_polygon(point: LatLng, polygon=FREE_ZONE_BOUNDARY) -> bool:
    """Ray casting over (lat, lng) vertices"""
    inside = False
    j = len(polygon) - 1
    for i in range(len(polygon)):
        lat_i, lng_i = polygon[i]
        lat_j, lng_j = polygon[j]
        if (lat_i > point.lat) != (lat_j > point.lat):
            crossing = (lng_j - lng_i) * (point.lat - lat_i) / (lat_j - lat_i) + lng_i
            if point.lng < crossing:
                inside = not inside
        j = i
    return inside


def _money(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def compute_fee_breakdown(distance_km: float, within_free_zone: bool, settings: FeeSettings) -> dict:
    distance_km = _money(distance_km)
    if distance_km > settings.max_distance_km:
        raise BadRequestError(
            f"Location is beyond the {settings.max_distance_km:g} km service radius",
            details={"distanceKm": distance_km},
        )

    if within_free_zone:
        return {
            "label": "FREE (within Metro Manila)",
            "isWithinFreeZone": True,
            "baseFee": 0,
            "baseCoveredKm": settings.base_covered_km,
            "perKmRate": settings.per_km_rate,
            "additionalDistanceKm": 0,
            "additionalFee": 0,
            "total": 0,
        }

    extra_km = max(0.0, distance_km - settings.base_covered_km)
    additional_fee = int(
        Decimal(str(extra_km * settings.per_km_rate)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    )
    return {
        "label": "PAID (outside Metro Manila)",
        "isWithinFreeZone": False,
        "baseFee": settings.base_fee,
        "baseCoveredKm": settings.base_covered_km,
        "perKmRate": settings.per_km_rate,
        "additionalDistanceKm": _money(extra_km),
        "additionalFee": additional_fee,
        "total": _money(settings.base_fee + additional_fee),
    }


class RouteFeeService:
    def __init__(
        self,
        http_client: Optional[httpx.Client] = None,
        route_cache: Cache = cache,
        settings: Optional[FeeSettings] = None,
        origin: Optional[LatLng] = None,
    ):
        self.http_client = http_client
        self.cache = route_cache
        self.settings = settings or FeeSettings()
        self.origin = origin or LatLng(SHOP_LATITUDE, SHOP_LONGITUDE)

    @staticmethod
    def _cache_key(origin: LatLng, destination: LatLng) -> str:
        raw = f"{origin.lat:.5f},{origin.lng:.5f}->{destination.lat:.5f},{destination.lng:.5f}"
        return f"route:{hashlib.md5(raw.encode()).hexdigest()}"  # noqa: S324 - cache key only

    def _fetch_directions(self, origin: LatLng, destination: LatLng) -> dict:
        payload = {
            "coordinates": [[origin.lng, origin.lat], [destination.lng, destination.lat]],
            "options": {"avoid_features": ["ferries"]},
        }
        headers = {"Authorization": ORS_API_KEY or "", "Content-Type": "application/json"}
        client = self.http_client or httpx.Client(timeout=15.0)
        try:
            resp = client.post(ORS_DIRECTIONS_URL, json=payload, headers=headers)
            resp.raise_for_status()
            routes = resp.json().get("routes") or []
        except httpx.HTTPError as e:
            logger.error(f"❌ OpenRouteService request failed: {e}")
            raise AppError("Failed to compute route. Please try again later.") from e
        finally:
            if self.http_client is None:
                client.close()

        summary = routes[0].get("summary") if routes else None
        if not summary:
            raise BadRequestError(
                "Unable to calculate route. Please select a different location.",
                code=ErrorCode.NO_ROUTE_FOUND,
            )
        return {
            "distanceKm": summary["distance"] / 1000,
            "etaMinutes": math.ceil(summary["duration"] / 60),
        }

    def compute_route(self, origin: LatLng, destination: LatLng) -> dict:
        key = self._cache_key(origin, destination)
        cached = self.cache.get(key)
        if cached:
            return {**cached, "cached": True}

        route = self._fetch_directions(origin, destination)
        self.cache.set(key, route, ROUTE_CACHE_TTL_SECONDS)
        return {**route, "cached": False}

    def compute_distance_and_fee(self, origin: LatLng, destination: LatLng) -> dict:
        route = self.compute_route(origin, destination)
        fee = compute_fee_breakdown(route["distanceKm"], point_in_polygon(destination), self.settings)
        logger.info(f"📍 Visit fee for ({destination.lat}, {destination.lng}): {fee['total']}")
        return {
            "distanceKm": _money(route["distanceKm"]),
            "etaMinutes": route["etaMinutes"],
            "fee": fee,
        }
