import asyncio
import logging
import random
from typing import List, Optional

import httpx
from fastapi import APIRouter, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from . import config
from .incidents import IncidentStore
from .models import (
    GeocodeResult,
    GeoPoint,
    Incident,
    IncidentReport,
    IncidentType,
    RouteRequest,
    RouteResult,
    RoutesResponse,
)
from .reroute import RerouteEvaluator
from .routing import Geocoder, GeocodingError, RouteProvider
from .simulation import DriveSimulator, SimulationStatus, Sleep

logger = logging.getLogger(__name__)

router = APIRouter()


def create_app(
    store: Optional[IncidentStore] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    sim_sleep: Sleep = asyncio.sleep,
    tick_hz: float = config.SIM_TICK_HZ,
) -> FastAPI:
    """
    Build the API around one incident store for the lifetime of the app.
    `http_client` and `sim_sleep` are injection points for tests.
    """
    app = FastAPI(title="TrafficRoute Backend", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.incidents = store or IncidentStore()
    app.state.routes = RouteProvider(app.state.incidents, client=http_client)
    app.state.reroute = RerouteEvaluator(app.state.incidents)
    app.state.geocoder = Geocoder(client=http_client)
    app.state.sim_sleep = sim_sleep
    app.state.tick_hz = tick_hz

    app.include_router(router)
    return app


async def _resolve(
    geocoder: Geocoder,
    point: Optional[GeoPoint],
    text: Optional[str],
    label: str,
) -> GeoPoint:
    if point is not None:
        return point
    if not text:
        raise HTTPException(status_code=400, detail=f"Either {label} or {label}_text is required")
    try:
        found = await geocoder.first(text)
    except GeocodingError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    if found is None:
        raise HTTPException(status_code=404, detail=f"{label.capitalize()} '{text}' not found")
    return found


@router.post("/api/routes", response_model=RoutesResponse)
async def get_routes(payload: RouteRequest, request: Request) -> RoutesResponse:
    """
    Plan a route and steer it around severe incidents.

    Endpoints may be given as coordinates or as text to geocode. Waypoints
    are visited in order. The response carries the route to drive and, when
    an incident touched the primary route, a notice saying whether we
    rerouted or found no clear alternative.
    """
    state = request.app.state
    start = await _resolve(state.geocoder, payload.start, payload.start_text, "start")
    end = await _resolve(state.geocoder, payload.end, payload.end_text, "end")

    points = [start, *payload.waypoints, end]
    route = await state.routes.get_route(points, payload.avoid_severe, payload.mode)
    if route is None:
        raise HTTPException(status_code=404, detail="No route found")

    route, notice = state.reroute.assess(route)
    return RoutesResponse(route=route, notice=notice)


@router.get("/api/incidents", response_model=List[Incident])
async def list_incidents(request: Request) -> List[Incident]:
    return request.app.state.incidents.list_incidents()


@router.post("/api/incidents", response_model=Incident, status_code=201)
async def report_incident(payload: IncidentReport, request: Request) -> Incident:
    return request.app.state.incidents.report_incident(
        payload.location,
        IncidentType(payload.type),
        payload.description,
    )


@router.get("/api/geocode", response_model=List[GeocodeResult])
async def geocode(q: str, request: Request) -> List[GeocodeResult]:
    try:
        return await request.app.state.geocoder.search(q)
    except GeocodingError as exc:
        raise HTTPException(status_code=502, detail=str(exc))


@router.websocket("/ws/simulate")
async def simulate(websocket: WebSocket) -> None:
    """
    Stream a drive along a route.

    Client sends {"route": RouteResult, "seed": optional int}; we answer
    with one {"type": "sample"} message per tick and finish with
    {"type": "complete"} or {"type": "stopped"}. {"type": "stop"} from the
    client cancels the drive. Incidents reported mid-drive are forwarded as
    {"type": "incidents_changed"}.
    """
    await websocket.accept()
    state = websocket.app.state

    message = None
    route = None
    try:
        message = await websocket.receive_json()
        route = RouteResult.model_validate(message.get("route"))
    except WebSocketDisconnect:
        return
    except (ValidationError, ValueError, KeyError, AttributeError) as exc:
        logger.info("[SIMULATION] rejected route payload: %s", exc)

    seed = message.get("seed") if isinstance(message, dict) else None
    if seed is not None and (isinstance(seed, bool) or not isinstance(seed, int)):
        logger.info("[SIMULATION] ignoring non-integer seed %r", seed)
        seed = None
    simulator = DriveSimulator(
        rng=random.Random(seed),
        tick_hz=state.tick_hz,
        sleep=state.sim_sleep,
    )
    if not simulator.start(route):
        await websocket.send_json({"type": "idle"})
        await websocket.close()
        return

    changes: "asyncio.Queue[Incident]" = asyncio.Queue()
    unsubscribe = state.incidents.subscribe(changes.put_nowait)
    disconnected = False

    async def listen() -> None:
        nonlocal disconnected
        try:
            while True:
                try:
                    incoming = await websocket.receive_json()
                except (ValueError, KeyError) as exc:
                    # non-JSON or binary frame
                    logger.info("[SIMULATION] ignoring unreadable client frame: %s", exc)
                    continue
                if isinstance(incoming, dict) and incoming.get("type") == "stop":
                    simulator.stop()
                    return
        except WebSocketDisconnect:
            disconnected = True
            simulator.stop()

    listener = asyncio.create_task(listen())
    try:
        async for sample in simulator.stream():
            while not changes.empty():
                incident = changes.get_nowait()
                await websocket.send_json(
                    {"type": "incidents_changed", "incident": incident.model_dump(mode="json")}
                )
            await websocket.send_json({"type": "sample", "state": sample.model_dump(mode="json")})

        if not disconnected:
            final = "complete" if simulator.status is SimulationStatus.completed else "stopped"
            await websocket.send_json({"type": final})
    except WebSocketDisconnect:
        simulator.stop()
    finally:
        unsubscribe()
        listener.cancel()
        await asyncio.gather(listener, return_exceptions=True)


app = create_app()
