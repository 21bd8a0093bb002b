"""Location handling for crisis responses.

Location is best effort. A provider may be slow, deny access or fail, in
which case the fixed fallback location is used and the crisis response asks
the user where they are. A later message naming a known place is recorded
and clears the pending concern.
"""
import asyncio
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

from safeharbor.shared.models import CrisisType
from safeharbor.shared.utils.text import normalize_text

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocationInfo:
    city: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = "United States"
    coordinates: Optional[Tuple[float, float]] = None
    is_fallback: bool = False

    def to_dict(self) -> Dict:
        return {
            "city": self.city,
            "region": self.region,
            "coordinates": (
                {"latitude": self.coordinates[0], "longitude": self.coordinates[1]}
                if self.coordinates else None
            ),
        }

    def describe(self) -> str:
        parts = [p for p in (self.city, self.region, self.country) if p]
        return ", ".join(parts) if parts else "unknown"


FALLBACK_LOCATION = LocationInfo(
    city="Cleveland", region="Ohio", country="United States", is_fallback=True
)


@dataclass(frozen=True)
class NoLocationConcern:
    """No location question is pending."""
    pass


@dataclass(frozen=True)
class AwaitingLocation:
    """A crisis response asked the user where they are."""
    concern_type: CrisisType
    message_id: str


LocationConcern = Union[NoLocationConcern, AwaitingLocation]


# Place name -> (city, county). Longer names first so "cuyahoga falls" wins
# over "cuyahoga".
KNOWN_PLACES: Tuple[Tuple[str, Optional[str], str], ...] = (
    ("cuyahoga falls", "Cuyahoga Falls", "Summit County"),
    ("north canton", "North Canton", "Stark County"),
    ("cleveland heights", "Cleveland Heights", "Cuyahoga County"),
    ("shaker heights", "Shaker Heights", "Cuyahoga County"),
    ("cleveland", "Cleveland", "Cuyahoga County"),
    ("lakewood", "Lakewood", "Cuyahoga County"),
    ("parma", "Parma", "Cuyahoga County"),
    ("strongsville", "Strongsville", "Cuyahoga County"),
    ("westlake", "Westlake", "Cuyahoga County"),
    ("euclid", "Euclid", "Cuyahoga County"),
    ("akron", "Akron", "Summit County"),
    ("barberton", "Barberton", "Summit County"),
    ("hudson", "Hudson", "Summit County"),
    ("stow", "Stow", "Summit County"),
    ("canton", "Canton", "Stark County"),
    ("massillon", "Massillon", "Stark County"),
    ("alliance", "Alliance", "Stark County"),
    ("mentor", "Mentor", "Lake County"),
    ("eastlake", "Eastlake", "Lake County"),
    ("willoughby", "Willoughby", "Lake County"),
    ("chardon", "Chardon", "Lake County"),
    ("ashtabula", "Ashtabula", "Ashtabula County"),
    ("conneaut", "Conneaut", "Ashtabula County"),
    ("geneva", "Geneva", "Ashtabula County"),
    ("cuyahoga county", None, "Cuyahoga County"),
    ("summit county", None, "Summit County"),
    ("stark county", None, "Stark County"),
    ("lake county", None, "Lake County"),
    ("ashtabula county", None, "Ashtabula County"),
    ("columbus", "Columbus", "Ohio"),
    ("cincinnati", "Cincinnati", "Ohio"),
    ("toledo", "Toledo", "Ohio"),
    ("dayton", "Dayton", "Ohio"),
    ("ohio", None, "Ohio"),
)

_PLACE_PATTERNS = [
    (re.compile(r"\b" + re.escape(name) + r"\b"), city, region)
    for name, city, region in sorted(KNOWN_PLACES, key=lambda p: -len(p[0]))
]

# County -> local lines (general first, then by crisis type)
COUNTY_RESOURCES: Dict[str, Dict[Optional[CrisisType], List[str]]] = {
    "Cuyahoga County": {
        None: ["Cuyahoga County Mobile Crisis is available at 1-216-623-6555."],
        CrisisType.EATING_DISORDER: [
            "For local specialized treatment, the Cleveland Emily Program offers "
            "eating disorder support at 1-888-272-0836."
        ],
        CrisisType.SUBSTANCE_USE: [
            "For local treatment options, Cleveland Project DAWN provides "
            "substance use support at 1-216-387-6290."
        ],
    },
    "Summit County": {
        None: ["Summit County Mobile Crisis is available at 330-434-9144."],
    },
    "Stark County": {
        None: ["Stark County Mobile Crisis is available at 330-452-6000."],
    },
    "Lake County": {
        None: ["Lake County Frontline Services are available at 1-440-381-8347."],
    },
    "Ashtabula County": {
        None: ["The Ashtabula County 24/7 Crisis Hotline is available at 1-800-577-7849."],
    },
}


def extract_location(text: str) -> Optional[LocationInfo]:
    """Known place named in ``text``, or None."""
    lowered = normalize_text(text)
    for pattern, city, region in _PLACE_PATTERNS:
        if pattern.search(lowered):
            return LocationInfo(city=city, region=region)
    return None


def county_for(location: LocationInfo) -> Optional[str]:
    if location.region in COUNTY_RESOURCES:
        return location.region
    if location.city:
        for name, city, region in KNOWN_PLACES:
            if city == location.city and region in COUNTY_RESOURCES:
                return region
    # A bare Ohio location is served by the Cleveland resources
    if location.region == "Ohio" and (location.city in (None, "Cleveland")):
        return "Cuyahoga County"
    return None


def local_resources(location: Optional[LocationInfo], crisis_type: CrisisType) -> List[str]:
    """Local crisis lines for a known, non-fallback location."""
    if location is None or location.is_fallback:
        return []
    county = county_for(location)
    if county is None:
        return []
    table = COUNTY_RESOURCES[county]
    return list(table.get(crisis_type, [])) or list(table[None])


class LocationProvider(ABC):
    """Best-effort source of the user's location (browser, IP lookup, profile)."""

    @abstractmethod
    async def lookup(self, session_id: str) -> Optional[LocationInfo]:
        pass


class StaticLocationProvider(LocationProvider):

    def __init__(self, location: Optional[LocationInfo] = None):
        self.location = location

    async def lookup(self, session_id: str) -> Optional[LocationInfo]:
        return self.location


class LocationResolver:
    """Wraps a provider with a timeout and the fallback location."""

    def __init__(self, provider: Optional[LocationProvider] = None, timeout_seconds: float = 2.0):
        self.provider = provider
        self.timeout_seconds = timeout_seconds

    async def resolve(self, session_id: str) -> LocationInfo:
        if self.provider is None:
            return FALLBACK_LOCATION
        try:
            location = await asyncio.wait_for(
                self.provider.lookup(session_id), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning(
                "LOCATION_LOOKUP_TIMEOUT",
                extra={"timeout_seconds": self.timeout_seconds, "fallback": FALLBACK_LOCATION.describe()}
            )
            return FALLBACK_LOCATION
        except Exception as e:
            logger.warning(
                "LOCATION_LOOKUP_FAILED",
                extra={"error": str(e), "error_type": type(e).__name__}
            )
            return FALLBACK_LOCATION
        return location or FALLBACK_LOCATION
