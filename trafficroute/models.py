from enum import Enum
from typing import List, Literal, Optional
from pydantic import BaseModel, Field


class GeoPoint(BaseModel):
    lat: float
    lon: float


class Severity(str, Enum):
    critical = "critical"
    major = "major"
    minor = "minor"


SEVERE = frozenset({Severity.critical, Severity.major})


class IncidentType(str, Enum):
    accident = "accident"
    construction = "construction"
    closure = "closure"
    traffic = "traffic"


class Reporter(str, Enum):
    system = "system"
    user = "user"


class TravelMode(str, Enum):
    delivery = "delivery"
    school = "school"
    emergency = "emergency"


class Incident(BaseModel):
    id: str
    location: GeoPoint
    severity: Severity
    type: IncidentType
    description: str
    reported_by: Reporter
    timestamp: int = Field(description="Creation time in epoch milliseconds")

    @property
    def is_severe(self) -> bool:
        return self.severity in SEVERE


class IncidentReport(BaseModel):
    location: GeoPoint
    type: Literal["accident", "construction", "closure"]
    description: Optional[str] = None


class AlternativeRoute(BaseModel):
    label: str
    coordinates: List[GeoPoint]
    distance_meters: float
    duration_seconds: float


class RouteResult(BaseModel):
    coordinates: List[GeoPoint] = Field(
        description="Path in travel order, start to end. Never reversed.",
    )
    distance_meters: float
    duration_seconds: float
    instructions: List[str] = Field(default_factory=list)
    alternatives: List[AlternativeRoute] = Field(default_factory=list)


class RerouteNotice(BaseModel):
    kind: Literal["rerouted", "no_clear_route"]
    incident_id: str
    description: str


class SimulationState(BaseModel):
    position: GeoPoint
    segment_index: int
    segment_progress: float
    total_progress: float
    distance_traveled_km: float
    eta_seconds: float
    speed_kmh: float


class GeocodeResult(BaseModel):
    lat: float
    lon: float
    display_name: str


class RouteRequest(BaseModel):
    start: Optional[GeoPoint] = None
    start_text: Optional[str] = Field(
        default=None,
        description="Human readable address, geocoded when start is not given",
    )
    end: Optional[GeoPoint] = None
    end_text: Optional[str] = Field(
        default=None,
        description="Human readable address, geocoded when end is not given",
    )
    waypoints: List[GeoPoint] = Field(
        default_factory=list,
        description="Intermediate stops visited in the given order",
    )
    mode: TravelMode = TravelMode.delivery
    avoid_severe: bool = True


class RoutesResponse(BaseModel):
    route: RouteResult
    notice: Optional[RerouteNotice] = None
