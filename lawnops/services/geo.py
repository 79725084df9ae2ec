"""
Geo helpers - great-circle distance, travel estimates and property enrichment.

Property enrichment is a mock geocoder.
Real geocoding is not wired up. The mock derives stable coordinates and lot
size from a hash of the address so the same address always enriches the
same way (replays and tests stay deterministic).
"""
import hashlib
import logging
import math
import re
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)

# Austin, TX - mock coordinates scatter around this point
BASE_LAT = 30.2672
BASE_LNG = -97.7431
SCATTER_DEGREES = 0.15

STREET_SUFFIX_PATTERN = re.compile(
    r"\b(st|street|ave|avenue|rd|road|dr|drive|ln|lane|ct|court|blvd|boulevard|way|pl|place|"
    r"cir|circle|ter|terrace|pkwy|parkway|hwy|highway|trl|trail|loop)\b\.?",
    re.IGNORECASE,
)
ZIP_PATTERN = re.compile(r"\b(\d{5})(?:-\d{4})?\b")


class PropertyEnricher(ABC):
    """Turns a collected street address into derived property facts."""

    @abstractmethod
    def enrich(self, address: str) -> dict:
        """
        Returns a dict with address_one_line, zip, lat, lng, lot_acres and
        address_confidence (0-1).
        """


class MockPropertyEnricher(PropertyEnricher):
    """Deterministic stand-in for a geocoder and parcel lookup."""

    def __init__(self, default_zip: str = "78701"):
        self.default_zip = default_zip

    def enrich(self, address: str) -> dict:
        normalized = " ".join(address.split())
        digest = hashlib.sha256(normalized.lower().encode("utf-8")).digest()

        lat_offset = (digest[0] / 255.0 - 0.5) * 2 * SCATTER_DEGREES
        lng_offset = (digest[1] / 255.0 - 0.5) * 2 * SCATTER_DEGREES
        lot_acres = 0.1 + (int.from_bytes(digest[2:4], "big") / 65535.0) * 0.5

        zip_match = ZIP_PATTERN.search(normalized)
        zip_code = zip_match.group(1) if zip_match else self.default_zip

        confidence = 0.9 if STREET_SUFFIX_PATTERN.search(normalized) else 0.6

        return {
            "address_one_line": normalized.rstrip("."),
            "zip": zip_code,
            "lat": round(BASE_LAT + lat_offset, 6),
            "lng": round(BASE_LNG + lng_offset, 6),
            "lot_acres": round(lot_acres, 3),
            "address_confidence": confidence,
        }


EARTH_RADIUS_MILES = 3959.0


def haversine_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in miles."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_MILES * math.asin(math.sqrt(min(1.0, a)))


class TravelEstimator(ABC):
    """Drive-time estimate between two coordinates. Swappable for a routing engine."""

    @abstractmethod
    def estimate_travel_minutes(self, origin: tuple[float, float], dest: tuple[float, float]) -> float:
        ...


class HaversineTravelEstimator(TravelEstimator):
    """
    Straight-line distance at a fixed average speed.

    This is an approximation: it ignores the road network and traffic, so it
    underestimates drives around rivers or highways. Good enough to rank
    nearby crews against each other, not to promise arrival times.
    """

    def __init__(self, average_speed_mph: float = 30.0):
        if average_speed_mph <= 0:
            raise ValueError("average_speed_mph must be positive")
        self.average_speed_mph = average_speed_mph

    def estimate_travel_minutes(self, origin: tuple[float, float], dest: tuple[float, float]) -> float:
        miles = haversine_miles(origin[0], origin[1], dest[0], dest[1])
        return round(miles / self.average_speed_mph * 60, 2)
