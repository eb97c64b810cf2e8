"""Place city names on the map.

Geocoding goes over the network through geopy's Nominatim client, so each
lookup may fail on its own. Results are kept in an explicit
:class:`GeocodeCache` that the caller creates and passes in; a city that was
found once is never queried again while the cache lives.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import pandas as pd
from geopy.exc import GeopyError
from geopy.extra.rate_limiter import RateLimiter
from geopy.geocoders import Nominatim

logger = logging.getLogger(__name__)

Coordinates = Tuple[float, float]  # (longitude, latitude)
Geocoder = Callable[[str], object]


class GeocodeError(ValueError):
    """Raised when a single city cannot be placed."""


@dataclass(frozen=True)
class GeocodeFailure:
    city: str
    reason: str


class GeocodeCache:
    """Geocoder query (city name plus suffix) -> (longitude, latitude).

    Filled on first successful lookup. Keys include the suffix, so the same
    city looked up within another country is a separate entry.
    """

    def __init__(self, entries: Optional[Dict[str, Coordinates]] = None):
        self._entries: Dict[str, Coordinates] = dict(entries or {})

    def get(self, query: str) -> Optional[Coordinates]:
        return self._entries.get(query)

    def put(self, query: str, coords: Coordinates) -> None:
        self._entries[query] = (float(coords[0]), float(coords[1]))

    def invalidate(self, query: str) -> None:
        self._entries.pop(query, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, query: object) -> bool:
        return query in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def make_geocoder(user_agent: str, min_delay_seconds: float = 1.0) -> Geocoder:
    """Nominatim lookup throttled to its usage policy; errors are not retried."""
    nominatim = Nominatim(user_agent=user_agent)
    return RateLimiter(
        nominatim.geocode,
        min_delay_seconds=min_delay_seconds,
        max_retries=0,
        swallow_exceptions=False,
    )


def geocode_city(name: str, geocoder: Geocoder, cache: GeocodeCache, suffix: str = "") -> Coordinates:
    """Coordinates for ``name + suffix``, from the cache when already known."""
    query = f"{name}{suffix}"
    cached = cache.get(query)
    if cached is not None:
        return cached
    try:
        location = geocoder(query)
    except GeopyError as exc:
        raise GeocodeError(f"lookup for {query!r} failed: {exc}") from exc
    if location is None:
        raise GeocodeError(f"no match for {query!r}")
    coords = (float(location.longitude), float(location.latitude))
    cache.put(query, coords)
    return coords


def geocode_cities(
    names: Iterable[str],
    geocoder: Geocoder,
    cache: GeocodeCache,
    suffix: str = "",
) -> Tuple[pd.DataFrame, List[GeocodeFailure]]:
    """Geocode each distinct name; a failed city is reported, not fatal."""
    rows = []
    failures: List[GeocodeFailure] = []
    for name in dict.fromkeys(str(n) for n in names):
        try:
            lon, lat = geocode_city(name, geocoder, cache, suffix)
        except GeocodeError as exc:
            logger.warning("Could not geocode %s: %s", name, exc)
            failures.append(GeocodeFailure(name, str(exc)))
            continue
        rows.append({"city": name, "longitude": lon, "latitude": lat})
    coords = pd.DataFrame(rows, columns=["city", "longitude", "latitude"])
    logger.info("Geocoded %d cities, %d failed", len(coords), len(failures))
    return coords, failures


def route_segments(routes: pd.DataFrame, coords: pd.DataFrame) -> pd.DataFrame:
    """Attach endpoint coordinates to routes; routes with an unplaced end are dropped."""
    ends = coords.set_index("city")
    segments = routes.copy()
    segments["city1"] = segments["city1"].astype(str)
    segments["city2"] = segments["city2"].astype(str)
    segments = segments.join(ends.add_prefix("city1_"), on="city1", how="inner")
    segments = segments.join(ends.add_prefix("city2_"), on="city2", how="inner")
    return segments.reset_index(drop=True)
