"""FastAPI service exposing the live state of the parking simulator."""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from errors import QueryError
from simulator import ParkingSimulator, build_simulator

logger = logging.getLogger(__name__)

app = FastAPI(title="Parking Occupancy Simulator")

SIMULATOR: Optional[ParkingSimulator] = None
TICK_SECONDS: float = 60.0


class SpaceOccupancy(BaseModel):
    facility: str
    space_type: str
    total: int = Field(..., gt=0)
    occupied: int = Field(..., ge=0)
    available: int = Field(..., ge=0)
    ratio: float = Field(..., ge=0.0, le=1.0, description="Share of the space type in use.")


class OccupancyResponse(BaseModel):
    running: bool
    tick_count: int
    updated_at: Optional[str]
    spaces: List[SpaceOccupancy]


class HistoryResponse(BaseModel):
    minutes: int
    facility: Optional[str]
    rows: List[Dict[str, Any]]


@app.on_event("startup")
def startup() -> None:
    """Build the simulator from the environment and run it on a background thread."""
    global SIMULATOR, TICK_SECONDS
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    SIMULATOR, TICK_SECONDS = build_simulator()
    worker = threading.Thread(
        target=SIMULATOR.run_forever,
        args=(TICK_SECONDS,),
        name="parking-simulator",
        daemon=True,
    )
    worker.start()
    logger.info("Simulator running every %gs in %s", TICK_SECONDS, SIMULATOR.timezone)


def _require_simulator() -> ParkingSimulator:
    if SIMULATOR is None:
        raise HTTPException(status_code=503, detail="Simulator is still starting. Try again shortly.")
    return SIMULATOR


@app.get("/health", tags=["meta"])
def health() -> Dict[str, Any]:
    """Simple health check."""
    return {
        "status": "ok" if SIMULATOR is not None else "starting",
        "timezone": SIMULATOR.timezone if SIMULATOR else None,
        "tick_seconds": TICK_SECONDS,
        "tick_count": SIMULATOR.tick_count if SIMULATOR else 0,
    }


@app.get("/occupancy", response_model=OccupancyResponse, tags=["simulation"])
def occupancy() -> OccupancyResponse:
    """Return the current occupancy of every facility and space type."""
    simulator = _require_simulator()
    report = simulator.last_report
    return OccupancyResponse(
        running=simulator.running,
        tick_count=simulator.tick_count,
        updated_at=report.context.local_time.isoformat(timespec="seconds") if report else None,
        spaces=[SpaceOccupancy(**space) for space in simulator.snapshot()],
    )


@app.get("/history", response_model=HistoryResponse, tags=["simulation"])
def history(
    minutes: int = Query(60, ge=1, le=24 * 60, description="How far back to look."),
    facility: Optional[str] = Query(None, description="Restrict to one facility."),
) -> HistoryResponse:
    """Return the occupancy points stored in InfluxDB over the last ``minutes``."""
    simulator = _require_simulator()
    if facility is not None and facility not in simulator.registry.names():
        raise HTTPException(status_code=404, detail=f"Unknown facility {facility!r}.")
    recent_occupancy = getattr(simulator.sink, "recent_occupancy", None)
    if recent_occupancy is None:
        raise HTTPException(status_code=501, detail="The configured sink does not support queries.")

    try:
        rows = recent_occupancy(minutes, facility)
    except QueryError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return HistoryResponse(minutes=minutes, facility=facility, rows=rows)
