"""Catalogue of the cities used as global test locations."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Mapping


@dataclass(frozen=True)
class Location:
    """A city that servers are searched for and tested against."""

    name: str
    country_code: str
    lat: float
    lon: float
    description: str
    region: str

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-ready representation."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Location:
        """Build a location from its JSON representation; missing fields are zeroed."""
        return cls(
            name=str(data.get("name", "")),
            country_code=str(data.get("country_code", "")),
            lat=float(data.get("lat", 0.0)),
            lon=float(data.get("lon", 0.0)),
            description=str(data.get("description", "")),
            region=str(data.get("region", "")),
        )


GLOBAL_LOCATIONS: tuple[Location, ...] = (
    # North America
    Location("New York", "US", 40.7128, -74.0060, "Financial Hub", "North America"),
    Location("Los Angeles", "US", 34.0522, -118.2437, "Tech Hub", "North America"),
    Location("Chicago", "US", 41.8781, -87.6298, "Industrial Hub", "North America"),
    Location("Toronto", "CA", 43.6532, -79.3832, "Financial Center", "North America"),
    Location("Vancouver", "CA", 49.2827, -123.1207, "Tech Hub", "North America"),
    # Europe
    Location("London", "GB", 51.5074, -0.1278, "Financial Capital", "Europe"),
    Location("Frankfurt", "DE", 50.1109, 8.6821, "Internet Exchange", "Europe"),
    Location("Amsterdam", "NL", 52.3676, 4.9041, "Data Center Hub", "Europe"),
    Location("Stockholm", "SE", 59.3293, 18.0686, "Nordic Tech Hub", "Europe"),
    Location("Paris", "FR", 48.8566, 2.3522, "Cultural Center", "Europe"),
    # Asia-Pacific
    Location("Tokyo", "JP", 35.6762, 139.6503, "Tech Innovation", "Asia-Pacific"),
    Location("Seoul", "KR", 37.5665, 126.9780, "Gaming Capital", "Asia-Pacific"),
    Location("Singapore", "SG", 1.3521, 103.8198, "SE Asia Hub", "Asia-Pacific"),
    Location("Hong Kong", "HK", 22.3193, 114.1694, "Financial Hub", "Asia-Pacific"),
    Location("Sydney", "AU", -33.8688, 151.2093, "Pacific Hub", "Asia-Pacific"),
    # Others
    Location("Dubai", "AE", 25.2048, 55.2708, "Middle East Hub", "Middle East"),
    Location("São Paulo", "BR", -23.5505, -46.6333, "Economic Hub", "South America"),
)


def get_by_region() -> dict[str, list[Location]]:
    """Group the global locations by region, keeping catalogue order within each."""
    regions: dict[str, list[Location]] = {}
    for location in GLOBAL_LOCATIONS:
        regions.setdefault(location.region, []).append(location)
    return regions


def get_regions() -> list[str]:
    """Return the distinct region names, sorted alphabetically."""
    return sorted({location.region for location in GLOBAL_LOCATIONS})


def find_by_name(name: str) -> Location | None:
    """Return the location with exactly this name, or None."""
    return next((loc for loc in GLOBAL_LOCATIONS if loc.name == name), None)