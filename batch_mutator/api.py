"""FastAPI application exposing the fire-and-forget update trigger."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, FastAPI, Request, Response, status

from batch_mutator.config import get_settings
from batch_mutator.loader import PopulationLoader
from batch_mutator.orchestrator import build_store, processor_factory
from batch_mutator.trigger import BackgroundWorker, UpdateTrigger
from batch_mutator.utils.logging import configure_logging, get_logger

log = get_logger(__name__)

router = APIRouter()


def _trigger(request: Request) -> UpdateTrigger:
    return request.app.state.trigger


@router.post("/records/updates", status_code=status.HTTP_202_ACCEPTED)
async def trigger_update(request: Request) -> Response:
    """
    Start a chunked update run in the background.

    Returns immediately; the outcome of the run is only visible in the logs.
    A request arriving while a run is in flight is coalesced into that run.
    """
    receipt = _trigger(request).fire()
    log.info(
        "Update requested",
        extra={"job_key": receipt.job_key, "scheduled": receipt.scheduled},
    )
    return Response(status_code=status.HTTP_202_ACCEPTED)


# The original trigger was a plain GET; keep it reachable for existing callers.
router.add_api_route(
    "/records/updates",
    trigger_update,
    methods=["GET"],
    status_code=status.HTTP_202_ACCEPTED,
    include_in_schema=False,
)


@router.get("/health")
async def health(request: Request) -> dict:
    worker: BackgroundWorker = request.app.state.worker
    return {"status": "healthy", "in_flight": worker.in_flight()}


def create_app(
    trigger: Optional[UpdateTrigger] = None,
    worker: Optional[BackgroundWorker] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    When `trigger` is omitted, the store, worker and trigger are built from
    settings at startup (an unreachable store fails startup).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings = get_settings()
        configure_logging(level=settings.log_level, json_logs=settings.log_json)
        log.info("api_starting", extra={"env": settings.app_env})

        app.state.worker = worker or BackgroundWorker()
        if trigger is not None:
            app.state.trigger = trigger
        else:
            store = build_store()
            app.state.trigger = UpdateTrigger(app.state.worker, processor_factory(store))
            if settings.populate_on_startup:
                loader = PopulationLoader(store)
                app.state.worker.submit("populate:records", lambda _event: loader.populate())

        yield

        log.info("api_stopping")
        app.state.worker.shutdown(wait=True, cancel=True)

    app = FastAPI(
        title="Batch Mutator",
        description="Chunked, bounded-memory marking of unprocessed records",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app


# Default app instance
app = create_app()
