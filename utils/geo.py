"""Great-circle distance and nearby-duplicate scan for report coordinates."""
import math
from typing import Iterable, Optional, Tuple

EARTH_RADIUS_KM = 6371.0

# (report_id, latitude, longitude) as returned by the candidate lookup, most recent first.
Candidate = Tuple[str, float, float]


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance in kilometres between two points given in decimal degrees."""
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(dlon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def find_duplicate(
    latitude: float,
    longitude: float,
    candidates: Iterable[Candidate],
    radius_km: float = 0.5,
) -> Optional[str]:
    """Return the id of the first candidate strictly within ``radius_km``.

    Candidates are scanned in the order given and the scan stops at the first
    hit, so the most recent nearby report wins even if an older one is closer.
    """
    for report_id, cand_lat, cand_lon in candidates:
        if haversine_km(latitude, longitude, float(cand_lat), float(cand_lon)) < radius_km:
            return report_id
    return None
