import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from datetime import datetime, timezone
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware

from module_2_marker_placement.adapters.persistence import JsonPersistence
from module_2_marker_placement.app.settings import AppSettings, get_settings
from module_2_marker_placement.core.deduplicator import MarkerDeduplicator
from module_2_marker_placement.core.status_board import StatusBoard
from module_2_marker_placement.services.placement_service import PlacementService


logger = logging.getLogger(__name__)
settings = get_settings()

persistence = JsonPersistence(settings.history_path, settings.state_snapshot_path)
placement_service = PlacementService(
    MarkerDeduplicator(settings.spawn_min_distance),
    StatusBoard(),
    persistence,
    restore_markers=settings.restore_markers,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    persistence.save_state(placement_service.snapshot(datetime.now(timezone.utc)))
    tick_task: Optional[asyncio.Task] = None
    if settings.enable_background_worker:
        tick_task = asyncio.create_task(_tick_worker(settings, placement_service))
        app.state.tick_task = tick_task
    try:
        yield
    finally:
        task: Optional[asyncio.Task] = getattr(app.state, "tick_task", tick_task)
        if task:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task


app = FastAPI(title="World Marker Placement", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_service() -> PlacementService:
    return placement_service


async def _tick_worker(cfg: AppSettings, service: PlacementService) -> None:
    """Drive the detection session once per tick on the event loop thread."""

    from module_1_object_detection.app.config.settings import load_settings as load_detection_settings
    from module_1_object_detection.app.detect import build_session
    from module_1_object_detection.app.utils.video import FrameSource, parse_source

    try:
        session = await asyncio.to_thread(build_session, load_detection_settings(), service)
    except Exception:
        logger.exception("Tick worker could not load the detection pipeline")
        return
    try:
        source = FrameSource(parse_source(cfg.video_source)).open()
    except RuntimeError:
        logger.exception("Tick worker could not open video source %s", cfg.video_source)
        session.dispose()
        return
    try:
        while True:
            try:
                frame = source.read()
                if frame is None:
                    logger.info("Video source %s exhausted, tick worker stopping", cfg.video_source)
                    return
                if service.drive(session, frame.data):
                    logger.debug("Frame %d produced %d detections", frame.index, len(service.detections()))
            except Exception:
                logger.exception("Tick worker encountered an unexpected error")
            await asyncio.sleep(cfg.tick_interval_seconds)
    finally:
        session.dispose()
        source.close()


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/status")
async def placement_status(service: PlacementService = Depends(get_service)) -> dict:
    return jsonable_encoder(service.snapshot(datetime.now(timezone.utc)))


@app.get("/detections")
async def detections(service: PlacementService = Depends(get_service)) -> list[dict]:
    if not service.has_detections:
        raise HTTPException(status_code=404, detail="No detection run has completed yet")
    return jsonable_encoder([detection.model_dump() for detection in service.detections()])


@app.get("/markers")
async def markers(service: PlacementService = Depends(get_service)) -> list[dict]:
    return jsonable_encoder([marker.model_dump() for marker in service.markers()])


@app.post("/markers/place")
async def place_markers(service: PlacementService = Depends(get_service)) -> dict:
    if not service.has_detections:
        raise HTTPException(status_code=404, detail="No detection run has completed yet")
    record = service.place_current(datetime.now(timezone.utc))
    return jsonable_encoder(record.model_dump())


@app.post("/markers/recenter", status_code=204)
async def recenter_markers(service: PlacementService = Depends(get_service)) -> None:
    service.recenter(datetime.now(timezone.utc))


@app.get("/markers/history")
async def placement_history(
    limit: Optional[int] = Query(default=None, ge=1),
    service: PlacementService = Depends(get_service),
) -> list[dict]:
    return jsonable_encoder([record.model_dump() for record in service.history(limit)])


@app.post("/detection/pause")
async def pause_detection(service: PlacementService = Depends(get_service)) -> dict:
    service.pause()
    return {"paused": service.paused}


@app.post("/detection/resume")
async def resume_detection(service: PlacementService = Depends(get_service)) -> dict:
    service.resume()
    return {"paused": service.paused}


def run_server() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    uvicorn.run(app, host=settings.host, port=settings.port, log_level="info")


if __name__ == "__main__":  # pragma: no cover
    run_server()
