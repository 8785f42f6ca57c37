"""
Potty Timer Service

REST surface over the timer lifecycle. Routes only parse input, call the
controller and shape the response envelope; every response carries
``success`` and failures carry ``error`` (plus ``details`` for 500s).
"""

import functools
import json
import logging
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .config import DURATION_PRESETS, HOST, LOG_LEVEL, PORT, TICK_INTERVAL_SECONDS
from .controller import TimerController
from .errors import InvalidArgument, NotFound, TimerError
from .models import TimerPatch, TimerStatus
from .reconcile import now_ms
from .store import TimerStore
from .ticker import ExpiryTicker

logger = logging.getLogger(__name__)

# ============================================================
# RESPONSE ENVELOPE
# ============================================================


def _ok(**payload: Any) -> dict[str, Any]:
    return {"success": True, **payload}


def _fail(status_code: int, error: str, details: str | None = None) -> JSONResponse:
    content: dict[str, Any] = {"success": False, "error": error}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def envelope(failure: str):
    """Translate controller errors raised by a route into failure responses.

    ``failure`` is the route's stable 500 message; the underlying error text
    goes into ``details``.
    """

    def decorator(handler: Callable[..., Awaitable[Any]]):
        @functools.wraps(handler)
        async def wrapper(*args, **kwargs):
            try:
                return await handler(*args, **kwargs)
            except InvalidArgument as e:
                return _fail(400, str(e))
            except NotFound as e:
                return _fail(404, str(e))
            except Exception as e:
                logger.exception(failure)
                return _fail(500, failure, str(e) or "Unknown error")

        return wrapper

    return decorator


async def _read_json(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except ValueError as e:
        raise InvalidArgument("Malformed JSON body.") from e


def _duration_from(body: Any) -> Any:
    return body.get("duration") if isinstance(body, dict) else None


def get_controller(request: Request) -> TimerController:
    return request.app.state.controller


# ============================================================
# HEALTH & PRESETS
# ============================================================

router = APIRouter()


@router.get("/health")
async def health(controller: TimerController = Depends(get_controller)):
    """Health check endpoint."""
    try:
        timers = await controller.store.list_all()
        active = await controller.store.list_active()
    except TimerError as e:
        logger.warning("Health check failed: %s", e)
        return JSONResponse(status_code=503, content={"status": "unhealthy", "error": str(e)})
    return {"status": "healthy", "timers": len(timers), "active": len(active)}


@router.get("/presets")
async def presets():
    """Preset countdown lengths offered to clients."""
    return _ok(presets=DURATION_PRESETS)


# ============================================================
# TIMER COLLECTION
# ============================================================


@router.get("/timers")
@envelope("Failed to fetch timers")
async def list_timers(
    status: TimerStatus | None = Query(None, description="Filter by timer status"),
    controller: TimerController = Depends(get_controller),
):
    """List timers, newest first."""
    timers = await controller.list_timers(status)
    return _ok(timers=[t.to_json() for t in timers], count=len(timers))


@router.post("/timers")
@envelope("Failed to create timer")
async def create_timer(request: Request, controller: TimerController = Depends(get_controller)):
    """Create a new (idle) timer."""
    body = await _read_json(request)
    timer = await controller.create_timer(_duration_from(body))
    return _ok(timer=timer.to_json(), message="Timer created successfully")


@router.delete("/timers")
@envelope("Failed to clear timers")
async def clear_timers(controller: TimerController = Depends(get_controller)):
    """Remove every timer (debug reset)."""
    count = await controller.clear_all()
    return _ok(message="All timers cleared", count=count)


@router.get("/timers/current")
@envelope("Failed to fetch current timer")
async def current_timer(controller: TimerController = Depends(get_controller)):
    """The newest timer, with its remaining time derived live."""
    timer = await controller.current_timer()
    return _ok(timer=timer.to_json())


# ============================================================
# SINGLE TIMER
# ============================================================


@router.get("/timers/{timer_id}")
@envelope("Failed to fetch timer")
async def get_timer(timer_id: str, controller: TimerController = Depends(get_controller)):
    timer = await controller.get_timer(timer_id)
    return _ok(timer=timer.to_json())


@router.put("/timers/{timer_id}/start")
@envelope("Failed to start timer")
async def start_timer(timer_id: str, controller: TimerController = Depends(get_controller)):
    timer = await controller.start(timer_id)
    return _ok(timer=timer.to_json(), message="Timer started successfully")


@router.put("/timers/{timer_id}/pause")
@envelope("Failed to pause timer")
async def pause_timer(timer_id: str, controller: TimerController = Depends(get_controller)):
    timer = await controller.pause(timer_id)
    return _ok(timer=timer.to_json(), message="Timer paused successfully")


@router.put("/timers/{timer_id}/reset")
@envelope("Failed to reset timer")
async def reset_timer(timer_id: str, controller: TimerController = Depends(get_controller)):
    timer = await controller.reset(timer_id)
    return _ok(timer=timer.to_json(), message="Timer reset successfully")


@router.put("/timers/{timer_id}/duration")
@envelope("Failed to update duration")
async def change_duration(
    timer_id: str, request: Request, controller: TimerController = Depends(get_controller)
):
    body = await _read_json(request)
    timer = await controller.change_duration(timer_id, _duration_from(body))
    return _ok(timer=timer.to_json(), message="Timer duration updated successfully")


@router.put("/timers/{timer_id}/dismiss")
@envelope("Failed to dismiss alert")
async def dismiss_alert(timer_id: str, controller: TimerController = Depends(get_controller)):
    """Leave notification mode without restarting the countdown."""
    timer = await controller.dismiss_alert(timer_id)
    return _ok(timer=timer.to_json(), message="Timer alert dismissed")


@router.put("/timers/{timer_id}")
@envelope("Failed to update timer")
async def update_timer(
    timer_id: str, request: Request, controller: TimerController = Depends(get_controller)
):
    """Generic partial update. Writes the given fields as-is."""
    fields = TimerPatch.parse(await _read_json(request))
    timer = await controller.generic_update(timer_id, fields)
    return _ok(timer=timer.to_json(), message="Timer updated successfully")


@router.delete("/timers/{timer_id}")
@envelope("Failed to delete timer")
async def delete_timer(timer_id: str, controller: TimerController = Depends(get_controller)):
    await controller.delete_timer(timer_id)
    return _ok(message="Timer deleted successfully")


# ============================================================
# FASTAPI APP
# ============================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    await app.state.store.open()
    app.state.ticker.start()
    logger.info("Potty Timer service started")
    yield
    await app.state.ticker.stop()
    await app.state.store.close()
    logger.info("Potty Timer service stopped")


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _fail(400, "Invalid request", str(exc))


def create_app(
    store: TimerStore | None = None,
    tick_interval: float = TICK_INTERVAL_SECONDS,
    clock: Callable[[], int] = now_ms,
) -> FastAPI:
    app = FastAPI(
        title="Potty Timer Service",
        description="Persistent countdown reminder with a REST API",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, _validation_error)

    app.state.store = store or TimerStore()
    app.state.controller = TimerController(app.state.store, clock=clock)
    app.state.ticker = ExpiryTicker(app.state.controller, tick_interval)

    app.include_router(router)
    return app


app = create_app()


# ============================================================
# MAIN
# ============================================================


def main():
    import uvicorn

    logging.basicConfig(
        level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    uvicorn.run(app, host=HOST, port=PORT)


if __name__ == "__main__":
    main()
