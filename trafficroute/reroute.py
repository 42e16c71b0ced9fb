"""
Reroute decision: keep the primary route, or swap in an alternative that
stays clear of severe incidents.

A route is "affected" when any of its coordinates lies within the reroute
radius (500 m by default) of a critical or major incident. The check is a
plain coordinates x incidents scan; both lists are small.
"""

import logging
from typing import Callable, List, Optional, Sequence, Tuple

from . import config
from .geo import distance_m
from .incidents import IncidentStore
from .models import AlternativeRoute, GeoPoint, Incident, RerouteNotice, RouteResult

logger = logging.getLogger(__name__)

ORIGINAL_LABEL = "Original (Traffic)"

NoticeListener = Callable[[RerouteNotice], None]


def affected_by(
    coords: Sequence[GeoPoint],
    incidents: Sequence[Incident],
    radius_m: float = config.REROUTE_RADIUS_M,
) -> Optional[Incident]:
    """First incident (in list order) with any coordinate inside radius_m."""
    for incident in incidents:
        for point in coords:
            if distance_m(point, incident.location) < radius_m:
                return incident
    return None


class RerouteEvaluator:
    def __init__(self, store: IncidentStore, radius_m: float = config.REROUTE_RADIUS_M):
        self.store = store
        self.radius_m = radius_m
        self._listeners: List[NoticeListener] = []

    def subscribe(self, listener: NoticeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def assess(self, route: RouteResult) -> Tuple[RouteResult, Optional[RerouteNotice]]:
        """
        Decide which route to drive. Returns the (possibly rewritten) route and
        the notice describing what happened, or None when the primary is clear.
        The input route is left untouched.
        """
        severe = self.store.severe_incidents()
        trigger = affected_by(route.coordinates, severe, self.radius_m)
        if trigger is None:
            return route, None

        for index, alternative in enumerate(route.alternatives):
            if affected_by(alternative.coordinates, severe, self.radius_m) is not None:
                continue

            displaced = AlternativeRoute(
                label=ORIGINAL_LABEL,
                coordinates=list(route.coordinates),
                distance_meters=route.distance_meters,
                duration_seconds=route.duration_seconds,
            )
            remaining = [alt for i, alt in enumerate(route.alternatives) if i != index]
            promoted = RouteResult(
                coordinates=list(alternative.coordinates),
                distance_meters=alternative.distance_meters,
                duration_seconds=alternative.duration_seconds,
                instructions=[],
                alternatives=[displaced] + remaining,
            )
            logger.info("[REROUTE] switched to %s to avoid: %s", alternative.label, trigger.description)
            return promoted, RerouteNotice(
                kind="rerouted",
                incident_id=trigger.id,
                description=trigger.description,
            )

        logger.warning("[REROUTE] no clear route around: %s", trigger.description)
        return route, RerouteNotice(
            kind="no_clear_route",
            incident_id=trigger.id,
            description=trigger.description,
        )

    def evaluate(self, route: RouteResult) -> RouteResult:
        result, notice = self.assess(route)
        if notice is not None:
            self._emit(notice)
        return result

    def _emit(self, notice: RerouteNotice) -> None:
        for listener in list(self._listeners):
            try:
                listener(notice)
            except Exception:
                logger.exception("[REROUTE] notice listener failed")
