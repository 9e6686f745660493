"""Async GeoIP lookup for session locations.

geoip2 reads from local .mmdb files and is sync; calls are wrapped in
asyncio.to_thread() to avoid blocking the event loop.

Location is best-effort: a missing database or failed lookup yields an empty
Location, and private/loopback addresses resolve to "Local Network".
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

import geoip2.database
import geoip2.errors
import maxminddb

from shared.ip_utils import is_private_ip
from shared.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class Location:
    location: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None


LOCAL_NETWORK = Location(location="Local Network")


class GeoIPService:
    def __init__(self, city_db_path: str) -> None:
        self._city_db_path = city_db_path
        self._city_reader: Optional[geoip2.database.Reader] = None
        self._city_loaded = False
        self._lock = asyncio.Lock()

    async def _get_city_reader(self) -> Optional[geoip2.database.Reader]:
        if not self._city_loaded:
            async with self._lock:
                if not self._city_loaded:
                    try:
                        self._city_reader = await asyncio.to_thread(
                            geoip2.database.Reader, self._city_db_path
                        )
                    except (OSError, maxminddb.InvalidDatabaseError) as e:
                        log.warning(
                            "geoip_city_db_unavailable",
                            error=str(e),
                            error_type=type(e).__name__,
                        )
                        self._city_reader = None
                    self._city_loaded = True
        return self._city_reader

    async def locate(self, ip_address: str) -> Location:
        if not ip_address or is_private_ip(ip_address):
            return LOCAL_NETWORK
        reader = await self._get_city_reader()
        if reader is None:
            return Location()
        try:
            result = await asyncio.to_thread(reader.city, ip_address)
        except (
            geoip2.errors.AddressNotFoundError,
            ValueError,
            maxminddb.InvalidDatabaseError,
        ):
            return Location()

        city = result.city.name
        country = result.country.name
        if city and country:
            label = f"{city}, {country}"
        else:
            label = country or city
        return Location(location=label, country=country, city=city)

    def close(self) -> None:
        if self._city_reader is not None:
            self._city_reader.close()
