"""
Drive simulation along a route polyline.

A simulated vehicle advances segment by segment at a noisy speed that
depends on where it is in the route:
  - first and last 10% of segments: 20-35 km/h (pulling out / arriving)
  - middle 30%-70%: 45-70 km/h (through roads)
  - everything else: 30-50 km/h
and every tick multiplies that by a further +/-20% jitter.

Each tick is 1/tick_hz seconds of simulated driving (60 Hz by default).
Movement left over when a segment ends inside a tick is dropped rather than
carried into the next segment.

Status lifecycle: idle -> running -> completed | stopped. Calling start()
again begins a new run from any status.
"""

import asyncio
import logging
import random
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, List, Optional

from . import config
from .geo import distance_km, path_length_km
from .models import GeoPoint, RouteResult, SimulationState

logger = logging.getLogger(__name__)

SampleListener = Callable[[SimulationState], None]
CompleteListener = Callable[[], None]
Sleep = Callable[[float], Awaitable[None]]


class SimulationStatus(str, Enum):
    idle = "idle"
    running = "running"
    completed = "completed"
    stopped = "stopped"


def realistic_speed(segment_index: int, segment_count: int, rng: random.Random) -> float:
    """Base speed in km/h for a segment, drawn fresh on every call."""
    p = segment_index / segment_count
    if p < 0.1 or p > 0.9:
        return 20 + rng.random() * 15
    if 0.3 < p < 0.7:
        return 45 + rng.random() * 25
    return 30 + rng.random() * 20


def interpolate(start: GeoPoint, end: GeoPoint, fraction: float) -> GeoPoint:
    # Linear in lat/lon; consecutive route points are close together
    return GeoPoint(
        lat=start.lat + (end.lat - start.lat) * fraction,
        lon=start.lon + (end.lon - start.lon) * fraction,
    )


class DriveSimulator:
    def __init__(
        self,
        rng: Optional[random.Random] = None,
        tick_hz: float = config.SIM_TICK_HZ,
        sleep: Sleep = asyncio.sleep,
    ):
        self.rng = rng or random.Random()
        self.tick_hz = tick_hz
        self.sleep = sleep

        self.status = SimulationStatus.idle
        self.state: Optional[SimulationState] = None
        self.active = False

        self._run_id = 0
        self._coordinates: List[GeoPoint] = []
        self._segment_km: List[float] = []
        self._total_km = 0.0
        self._segment = 0
        self._segment_progress = 0.0
        self._completed_km = 0.0

        self._sample_listeners: List[SampleListener] = []
        self._complete_listeners: List[CompleteListener] = []

    @property
    def frame_seconds(self) -> float:
        return 1.0 / self.tick_hz

    def subscribe(
        self,
        on_sample: Optional[SampleListener] = None,
        on_complete: Optional[CompleteListener] = None,
    ) -> Callable[[], None]:
        """Listen for per-tick samples and the completion signal."""
        if on_sample is not None:
            self._sample_listeners.append(on_sample)
        if on_complete is not None:
            self._complete_listeners.append(on_complete)

        def unsubscribe() -> None:
            if on_sample in self._sample_listeners:
                self._sample_listeners.remove(on_sample)
            if on_complete in self._complete_listeners:
                self._complete_listeners.remove(on_complete)

        return unsubscribe

    def start(self, route: Optional[RouteResult]) -> bool:
        """
        Begin a new run along `route`. Returns False (and stays idle) when the
        route is missing or has fewer than two coordinates.
        """
        self._run_id += 1
        self.active = False
        self.state = None

        if route is None or len(route.coordinates) < 2:
            self.status = SimulationStatus.idle
            logger.info("[SIMULATION] not started: route missing or degenerate")
            return False

        self._coordinates = list(route.coordinates)
        self._segment_km = [
            distance_km(self._coordinates[i], self._coordinates[i + 1])
            for i in range(len(self._coordinates) - 1)
        ]
        self._total_km = path_length_km(self._coordinates)
        self._segment = 0
        self._segment_progress = 0.0
        self._completed_km = 0.0

        self.state = SimulationState(
            position=self._coordinates[0],
            segment_index=0,
            segment_progress=0.0,
            total_progress=0.0,
            distance_traveled_km=0.0,
            eta_seconds=route.duration_seconds,
            speed_kmh=0.0,
        )
        self.active = True
        self.status = SimulationStatus.running
        logger.info(
            "[SIMULATION] started: %d segment(s), %.2f km",
            len(self._segment_km), self._total_km,
        )
        return True

    def stop(self) -> None:
        """Cancel the current run. No further samples or completion are emitted."""
        if self.status is not SimulationStatus.running:
            return
        self.active = False
        self.state = None
        self.status = SimulationStatus.stopped
        logger.info("[SIMULATION] stopped")

    def tick(self) -> Optional[SimulationState]:
        """Advance one frame. Returns the new sample, or None if nothing moved."""
        if not self.active:
            return None

        last = len(self._coordinates) - 1
        if self._segment >= last:
            self._complete()
            return None

        base_speed = realistic_speed(self._segment, last, self.rng)
        speed_kmh = base_speed * (0.8 + self.rng.random() * 0.4)
        move_m = speed_kmh * 1000 / 3600 * self.frame_seconds

        segment_m = self._segment_km[self._segment] * 1000
        if segment_m > 0:
            self._segment_progress += move_m / segment_m
        else:
            self._segment_progress = 1.0

        if self._segment_progress >= 1:
            self._completed_km += self._segment_km[self._segment]
            self._segment += 1
            self._segment_progress = 0.0

        traveled_km = self._completed_km
        if self._segment < last:
            traveled_km += self._segment_km[self._segment] * self._segment_progress
            position = interpolate(
                self._coordinates[self._segment],
                self._coordinates[self._segment + 1],
                self._segment_progress,
            )
            segment_index = self._segment
        else:
            position = self._coordinates[-1]
            segment_index = last - 1

        if self._total_km > 0:
            total_progress = min(traveled_km / self._total_km, 1.0)
        else:
            total_progress = 1.0
        remaining_km = max(self._total_km - traveled_km, 0.0)

        state = SimulationState(
            position=position,
            segment_index=segment_index,
            segment_progress=self._segment_progress,
            total_progress=total_progress,
            distance_traveled_km=traveled_km,
            eta_seconds=remaining_km * 1000 / (speed_kmh / 3.6),
            speed_kmh=speed_kmh,
        )
        self.state = state
        for listener in list(self._sample_listeners):
            listener(state)
        return state

    async def stream(self) -> AsyncIterator[SimulationState]:
        """
        Drive the current run in real (or injected) time, yielding a sample
        per tick. Ends when the run completes, is stopped, or is replaced by
        a new start().
        """
        run_id = self._run_id
        while self.active and self._run_id == run_id:
            state = self.tick()
            if state is not None:
                yield state
            if not self.active or self._run_id != run_id:
                break
            await self.sleep(self.frame_seconds)

    def _complete(self) -> None:
        self.active = False
        self.state = None
        self.status = SimulationStatus.completed
        logger.info("[SIMULATION] completed %.2f km", self._completed_km)
        for listener in list(self._complete_listeners):
            listener()
