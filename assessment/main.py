import logging
from typing import Optional

import uvicorn
from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from fastapi.staticfiles import StaticFiles
from starlette.concurrency import run_in_threadpool

from . import config
from .controller import SessionController
from .errors import install_exception_handlers
from .oracle import get_oracle
from .report import build_csv_report_content
from .schemas import (
    IntegrityEventRequest,
    IntegrityEventResponse,
    ReportResponse,
    SessionView,
    SnapshotRequest,
    SnapshotResponse,
    SubmitRequest,
    SubmitResponse,
)
from .storage import BaseStorage, LocalStorage, get_storage, local_store_of
from .store import SessionStore

logger = logging.getLogger(__name__)

router = APIRouter()


def get_controller(request: Request) -> SessionController:
    return request.app.state.controller


@router.get("/session/{session_id}", response_model=SessionView)
async def get_session(session_id: str, controller: SessionController = Depends(get_controller)):
    return await controller.get_session_view(session_id)


@router.post("/session/{session_id}/submit", response_model=SubmitResponse)
async def submit_session(
    session_id: str,
    payload: SubmitRequest,
    controller: SessionController = Depends(get_controller),
):
    return await controller.submit(session_id, payload.code)


@router.post("/integrity-event", response_model=IntegrityEventResponse)
async def log_integrity_event(
    payload: IntegrityEventRequest,
    controller: SessionController = Depends(get_controller),
):
    event = await controller.record_integrity_event(payload.session_id, payload.type, payload.timestamp)
    return IntegrityEventResponse(log_id=event.id)


@router.post("/snapshot", response_model=SnapshotResponse)
async def upload_snapshot(
    payload: SnapshotRequest,
    background_tasks: BackgroundTasks,
    controller: SessionController = Depends(get_controller),
):
    snapshot = await controller.record_snapshot(
        payload.session_id, payload.image, payload.timestamp, background_tasks
    )
    return SnapshotResponse(snapshot_id=snapshot.id, image_url=snapshot.image_url)


@router.get("/session/{session_id}/report", response_model=ReportResponse)
async def get_report(session_id: str, controller: SessionController = Depends(get_controller)):
    report = await controller.build_report(session_id)
    await controller.archive_report(report)
    return report


@router.get("/session/{session_id}/report.csv")
async def download_report_csv(session_id: str, controller: SessionController = Depends(get_controller)):
    report = await controller.build_report(session_id)
    csv_content = build_csv_report_content(report.model_dump())
    return StreamingResponse(
        iter([csv_content.encode("utf-8")]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=report_{session_id}.csv"},
    )


@router.get("/snapshots/{name}")
async def get_snapshot(name: str, controller: SessionController = Depends(get_controller)):
    if isinstance(controller.storage, LocalStorage):
        raise HTTPException(status_code=404, detail="Use /uploads/snapshots static mount")
    try:
        data = await run_in_threadpool(controller.storage.open_bytes, f"snapshots/{name}")
    except (FileNotFoundError, ValueError):
        raise HTTPException(status_code=404, detail="Snapshot not found")
    return StreamingResponse(iter([data]), media_type="image/jpeg")


@router.get("/")
def root():
    return {"status": "ok", "message": "Assessment session service running"}


def create_app(
    controller: Optional[SessionController] = None,
    storage: Optional[BaseStorage] = None,
) -> FastAPI:
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s  %(levelname)s  %(name)s  %(message)s",
    )

    if controller is None:
        storage = storage or get_storage(config.SNAPSHOT_DIR, config.REPORT_DIR)
        controller = SessionController(SessionStore.default(), storage, oracle=get_oracle())

    app = FastAPI(title="Assessment Session Service", version="1.0.0")
    app.state.controller = controller

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_exception_handlers(app)

    local = local_store_of(controller.storage)
    if local is not None:
        app.mount(
            f"{local.url_prefix}/snapshots",
            StaticFiles(directory=str(local.snapshot_dir), html=False),
            name="snapshots",
        )
        app.mount(
            f"{local.url_prefix}/reports",
            StaticFiles(directory=str(local.report_dir), html=False),
            name="reports",
        )

    app.include_router(router)
    logger.info("Blob storage backend: %s", controller.storage.backend)
    return app


app = create_app()


def serve() -> None:
    uvicorn.run(app, host=config.HOST, port=config.PORT, log_level=config.LOG_LEVEL.lower())


if __name__ == "__main__":
    serve()
