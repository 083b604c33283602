"""
Verification Auto-Score Engine

Scores a staff verification submission before any human review:
- Geo: distance between the resolved capture location and the store (0-60)
- Roster: applicant email / name against the store roster (0-30)
- Freshness: capture time relative to now (0-10)

Pure computation over already-fetched inputs. No database access, no
side effects. Given identical inputs (and the same `now_ms`) the result
is always identical.

Data-quality gaps (no GPS, unknown store, empty roster) degrade to
explicit reason codes and zero points. Only a submission without an id
is a contract violation.
"""
import math
import re
from enum import Enum
from typing import Dict, Iterable, List, Optional
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from staff_verify.exceptions import InvalidSubmissionError

EARTH_RADIUS_M = 6371000

THRESHOLDS = {
    # Geofence classification (meters)
    "geo_match_m": 250,
    "geo_near_m": 800,
    # Geo point curve (meters)
    "geo_full_points_m": 200,
    "geo_zero_points_m": 1500,
    # Freshness window
    "freshness_ms": 10 * 60 * 1000,
    # Name matching scans at most this many roster entries
    "roster_name_scan_limit": 50,
}

POINTS = {
    "geo_max": 60,
    "roster_email": 30,
    "roster_name": 20,
    "fresh_capture": 10,
}

_NON_LETTER = re.compile(r"[^a-z\s]")


class LocationSource(str, Enum):
    device = "device"
    exif = "exif"


class ReasonKind(str, Enum):
    NO_STORE_ID = "NO_STORE_ID"
    NO_GPS = "NO_GPS"
    NO_STORE_COORDS = "NO_STORE_COORDS"
    GEO_DEVICE_MATCH = "GEO_DEVICE_MATCH"
    GEO_EXIF_MATCH = "GEO_EXIF_MATCH"
    GEO_NEAR = "GEO_NEAR"
    GEO_OUT_OF_RANGE = "GEO_OUT_OF_RANGE"
    ROSTER_EMAIL_MATCH = "ROSTER_EMAIL_MATCH"
    ROSTER_NAME_MATCH = "ROSTER_NAME_MATCH"
    NO_ROSTER_HIT = "NO_ROSTER_HIT"
    FRESH_CAPTURE = "FRESH_CAPTURE"
    STALE_CAPTURE = "STALE_CAPTURE"


GEO_REASONS = {
    ReasonKind.NO_GPS,
    ReasonKind.NO_STORE_COORDS,
    ReasonKind.GEO_DEVICE_MATCH,
    ReasonKind.GEO_EXIF_MATCH,
    ReasonKind.GEO_NEAR,
    ReasonKind.GEO_OUT_OF_RANGE,
}

ROSTER_REASONS = {
    ReasonKind.ROSTER_EMAIL_MATCH,
    ReasonKind.ROSTER_NAME_MATCH,
    ReasonKind.NO_ROSTER_HIT,
}


class Reason(BaseModel):
    """Reason code, optionally carrying the measured distance."""
    kind: ReasonKind
    distance_meters: Optional[int] = None

    def format(self) -> str:
        if self.distance_meters is None:
            return self.kind.value
        return f"{self.kind.value}({self.distance_meters}m)"


class GeoPoint(BaseModel):
    lat: Optional[float] = None
    lng: Optional[float] = None


class DeviceLocation(GeoPoint):
    captured_at_ms: Optional[int] = None


class ResolvedLocation(BaseModel):
    lat: float
    lng: float
    source: LocationSource
    captured_at_ms: Optional[int] = None


class Submission(BaseModel):
    """Verification request fields the engine reads."""
    id: Optional[str] = None
    store_id: Optional[str] = None
    applicant_email: Optional[str] = None
    applicant_name: Optional[str] = None
    device_location: Optional[DeviceLocation] = None
    exif_location: Optional[GeoPoint] = None


class StoreRecord(BaseModel):
    store_id: str
    name: Optional[str] = None
    address: Optional[str] = None
    location: Optional[GeoPoint] = None


class RosterRecord(BaseModel):
    email: str
    email_lower: Optional[str] = None
    name: Optional[str] = None
    normalized_name: Optional[str] = None


class ScoreResult(BaseModel):
    auto_score: int
    reasons: List[Reason] = Field(default_factory=list)
    distance_meters: Optional[int] = None
    location_source: Optional[LocationSource] = None
    geo_points: int = 0
    roster_points: int = 0
    freshness_points: int = 0

    def reason_strings(self) -> List[str]:
        return [r.format() for r in self.reasons]

    def to_patch(self) -> Dict[str, object]:
        """Fields written back onto the verification request."""
        return {
            "auto_score": self.auto_score,
            "reasons": self.reason_strings(),
            "distance_meters": self.distance_meters,
            "location_source": self.location_source.value if self.location_source else None,
        }


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _valid_coord(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


def _has_point(point: Optional[GeoPoint]) -> bool:
    return point is not None and _valid_coord(point.lat) and _valid_coord(point.lng)


def normalize_name(name: Optional[str]) -> str:
    """Lowercase, drop everything but letters and whitespace, trim."""
    return _NON_LETTER.sub("", (name or "").lower()).strip()


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def haversine_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> int:
    """Great-circle distance in meters, rounded to the nearest meter."""
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lng = math.radians(lng2 - lng1)

    a = (math.sin(delta_lat / 2) ** 2 +
         math.cos(lat1_rad) * math.cos(lat2_rad) *
         math.sin(delta_lng / 2) ** 2)
    # Rounding can push a past 1 for near-antipodal points
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return _round_half_up(EARTH_RADIUS_M * c)


def resolve_location(submission: Submission) -> Optional[ResolvedLocation]:
    """
    Pick the location evidence that wins for this submission.

    Device location beats EXIF GPS. Only device locations carry a
    capture time.
    """
    device = submission.device_location
    if _has_point(device):
        return ResolvedLocation(
            lat=device.lat,
            lng=device.lng,
            source=LocationSource.device,
            captured_at_ms=device.captured_at_ms,
        )

    exif = submission.exif_location
    if _has_point(exif):
        return ResolvedLocation(lat=exif.lat, lng=exif.lng, source=LocationSource.exif)

    return None


def geo_points(distance_m: int) -> int:
    """Full points up to 200 m, linear decay to zero at 1500 m."""
    full = THRESHOLDS["geo_full_points_m"]
    zero = THRESHOLDS["geo_zero_points_m"]
    max_points = POINTS["geo_max"]

    if distance_m <= full:
        return max_points
    if distance_m >= zero:
        return 0
    return max(0, _round_half_up(max_points * (1 - (distance_m - full) / (zero - full))))


def classify_distance(distance_m: int, source: LocationSource) -> Reason:
    if distance_m <= THRESHOLDS["geo_match_m"]:
        kind = (ReasonKind.GEO_DEVICE_MATCH if source == LocationSource.device
                else ReasonKind.GEO_EXIF_MATCH)
    elif distance_m <= THRESHOLDS["geo_near_m"]:
        kind = ReasonKind.GEO_NEAR
    else:
        kind = ReasonKind.GEO_OUT_OF_RANGE
    return Reason(kind=kind, distance_meters=distance_m)


def match_roster(
    email: Optional[str],
    name: Optional[str],
    roster: Iterable[RosterRecord]
) -> Reason:
    """
    Email match outranks name match.

    Email is looked up by roster key first, then by the lowercased email
    field. Name matching only runs without an email hit and scans at most
    the first `roster_name_scan_limit` entries.
    """
    entries = list(roster)
    wanted_email = normalize_email(email)

    if wanted_email:
        by_key = {e.email: e for e in entries}
        if wanted_email in by_key:
            return Reason(kind=ReasonKind.ROSTER_EMAIL_MATCH)
        for entry in entries:
            if entry.email_lower and entry.email_lower == wanted_email:
                return Reason(kind=ReasonKind.ROSTER_EMAIL_MATCH)

    wanted_name = normalize_name(name)
    if wanted_name:
        for entry in entries[:THRESHOLDS["roster_name_scan_limit"]]:
            candidate = entry.normalized_name or normalize_name(entry.name)
            if not candidate:
                continue
            if wanted_name in candidate or candidate in wanted_name:
                return Reason(kind=ReasonKind.ROSTER_NAME_MATCH)

    return Reason(kind=ReasonKind.NO_ROSTER_HIT)


ROSTER_POINTS = {
    ReasonKind.ROSTER_EMAIL_MATCH: POINTS["roster_email"],
    ReasonKind.ROSTER_NAME_MATCH: POINTS["roster_name"],
    ReasonKind.NO_ROSTER_HIT: 0,
}


def _now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def score(
    submission: Submission,
    store: Optional[StoreRecord],
    roster: Iterable[RosterRecord],
    now_ms: Optional[int] = None
) -> ScoreResult:
    """
    Score one submission against its store and roster snapshot.

    Args:
        submission: Request fields as submitted
        store: Store record, or None when the store was not found
        roster: Roster entries for the submission's store
        now_ms: Reference time for the freshness check (defaults to now)

    Returns:
        ScoreResult with the score, ordered reasons and geo signals
    """
    if not submission.id:
        raise InvalidSubmissionError("Verification request has no id")

    if not submission.store_id:
        return ScoreResult(auto_score=0, reasons=[Reason(kind=ReasonKind.NO_STORE_ID)])

    reasons: List[Reason] = []
    location = resolve_location(submission)
    store_point = store.location if store is not None else None

    # 1. Geo
    distance_m = None
    geo = 0
    if location is None or not _has_point(store_point):
        if location is None:
            reasons.append(Reason(kind=ReasonKind.NO_GPS))
        if not _has_point(store_point):
            reasons.append(Reason(kind=ReasonKind.NO_STORE_COORDS))
    else:
        distance_m = haversine_meters(location.lat, location.lng, store_point.lat, store_point.lng)
        reasons.append(classify_distance(distance_m, location.source))
        geo = geo_points(distance_m)

    # 2. Roster
    roster_reason = match_roster(submission.applicant_email, submission.applicant_name, roster)
    reasons.append(roster_reason)
    roster_pts = ROSTER_POINTS[roster_reason.kind]

    # 3. Freshness
    fresh = 0
    captured_at_ms = location.captured_at_ms if location is not None else None
    if captured_at_ms is not None:
        reference = _now_ms() if now_ms is None else now_ms
        if abs(reference - captured_at_ms) <= THRESHOLDS["freshness_ms"]:
            reasons.append(Reason(kind=ReasonKind.FRESH_CAPTURE))
            fresh = POINTS["fresh_capture"]
        else:
            reasons.append(Reason(kind=ReasonKind.STALE_CAPTURE))

    total = max(0, min(100, int(round(geo + roster_pts + fresh))))

    return ScoreResult(
        auto_score=total,
        reasons=reasons,
        distance_meters=distance_m,
        location_source=location.source if location is not None else None,
        geo_points=geo,
        roster_points=roster_pts,
        freshness_points=fresh,
    )
