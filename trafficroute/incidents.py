"""
In-memory traffic incident store.

Holds two kinds of incidents:
  - Seeded (system) incidents: the mock traffic feed, never expire.
  - User-reported incidents: expire once older than the configured TTL
    (2 hours by default) and are purged lazily whenever the store is read.

The store is owned by the application session and handed to the route
provider, the reroute evaluator and the API. Writers get change
notifications through subscribe().
"""

import asyncio
import logging
import time
import uuid
from typing import Callable, Iterable, List, Optional

from . import config
from .models import GeoPoint, Incident, IncidentType, Reporter, Severity

logger = logging.getLogger(__name__)

IncidentListener = Callable[[Incident], None]

SEVERITY_BY_TYPE = {
    IncidentType.accident: Severity.critical,
    IncidentType.construction: Severity.major,
    IncidentType.closure: Severity.critical,
}

DEFAULT_DESCRIPTIONS = {
    IncidentType.accident: "Accident reported by user",
    IncidentType.construction: "Construction work reported by user",
    IncidentType.closure: "Road closure reported by user",
}

# (lat, lon, severity, type, description) for the demo traffic feed
SEED_INCIDENTS = [
    (11.005, 76.008, Severity.major, IncidentType.traffic, "Heavy traffic on bypass"),
    (10.995, 76.010, Severity.minor, IncidentType.construction, "Men at work"),
    (11.002, 76.001, Severity.critical, IncidentType.accident, "Accident, road blocked"),
]


def _now_ms() -> int:
    return int(time.time() * 1000)


def seed_incidents(created_at: int) -> List[Incident]:
    """Build the system incidents of the demo feed."""
    return [
        Incident(
            id=f"sys-{index}",
            location=GeoPoint(lat=lat, lon=lon),
            severity=severity,
            type=incident_type,
            description=description,
            reported_by=Reporter.system,
            timestamp=created_at,
        )
        for index, (lat, lon, severity, incident_type, description) in enumerate(SEED_INCIDENTS, start=1)
    ]


class IncidentStore:
    def __init__(
        self,
        seed: Optional[Iterable[Incident]] = None,
        clock: Optional[Callable[[], int]] = None,
        ttl_ms: int = config.INCIDENT_TTL_MS,
    ):
        self._clock = clock or _now_ms
        self.ttl_ms = ttl_ms
        self._seeded: List[Incident] = list(seed) if seed is not None else seed_incidents(self._clock())
        self._reported: List[Incident] = []
        self._listeners: List[IncidentListener] = []

    def list_incidents(self) -> List[Incident]:
        """Seeded incidents followed by unexpired user reports, oldest first."""
        self._purge_expired()
        return self._seeded + self._reported

    def severe_incidents(self) -> List[Incident]:
        return [incident for incident in self.list_incidents() if incident.is_severe]

    def report_incident(
        self,
        location: GeoPoint,
        type: IncidentType,
        description: Optional[str] = None,
    ) -> Incident:
        incident_type = IncidentType(type)
        incident = Incident(
            id=f"usr-{uuid.uuid4().hex}",
            location=location,
            severity=SEVERITY_BY_TYPE.get(incident_type, Severity.minor),
            type=incident_type,
            description=description or DEFAULT_DESCRIPTIONS.get(incident_type, "Incident reported by user"),
            reported_by=Reporter.user,
            timestamp=self._clock(),
        )
        self._reported.append(incident)
        logger.info(
            "[INCIDENTS] %s (%s) reported at %.4f, %.4f",
            incident.type.value, incident.severity.value, location.lat, location.lon,
        )
        self._notify(incident)
        return incident

    def subscribe(self, listener: IncidentListener) -> Callable[[], None]:
        """Register a change listener. Returns a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _purge_expired(self) -> None:
        now = self._clock()
        kept = [i for i in self._reported if now - i.timestamp <= self.ttl_ms]
        if len(kept) != len(self._reported):
            logger.info("[INCIDENTS] purged %d expired report(s)", len(self._reported) - len(kept))
            self._reported = kept

    def _notify(self, incident: Incident) -> None:
        listeners = list(self._listeners)
        if not listeners:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is None:
            self._dispatch(listeners, incident)
        else:
            loop.call_soon(self._dispatch, listeners, incident)

    @staticmethod
    def _dispatch(listeners: List[IncidentListener], incident: Incident) -> None:
        for listener in listeners:
            try:
                listener(incident)
            except Exception:
                logger.exception("[INCIDENTS] change listener failed")
