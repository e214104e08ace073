import asyncio
import json
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.websockets import WebSocketState
from loguru import logger

from . import __version__
from .broadcaster import EventBroadcaster, Subscription
from .config import Settings
from .exceptions import ExecutionNotFoundError
from .models import ExecutionCreate, ExecutionRecord, HealthResponse
from .runner import ExecutionRunner
from .store import ExecutionStore

router = APIRouter()

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings: Settings = app.state.settings
    logger.info(f"CREWDECK ready: {len(settings.runner.steps)}-step script, {settings.runner.interval}s tick")
    yield
    await app.state.runner.shutdown()
    logger.info("CREWDECK shut down")

async def invalid_request_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Rejected {request.method} {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=400, content={"detail": "Invalid execution data"})

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the API with its own store, broadcaster and runner"""
    settings = settings or Settings.from_env()

    app = FastAPI(
        title="CREWDECK API",
        description="Crew execution console - start simulated crew executions and stream their progress",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, invalid_request_handler)

    app.state.settings = settings
    app.state.store = ExecutionStore()
    app.state.broadcaster = EventBroadcaster(queue_size=settings.queue_size)
    app.state.runner = ExecutionRunner(app.state.store, app.state.broadcaster, settings.runner)

    app.include_router(router)
    return app

@router.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "CREWDECK - Crew Execution Console",
        "description": "Start crew executions and watch them live on /ws",
        "version": __version__,
        "status": "running"
    }

@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """Health check endpoint"""
    return HealthResponse(
        status="healthy",
        active_executions=request.app.state.runner.active_executions(),
        subscribers=request.app.state.broadcaster.subscriber_count,
    )

@router.post("/api/executions", status_code=201, response_model=ExecutionRecord)
async def create_execution(body: ExecutionCreate, request: Request):
    """Create an execution record and start its runner.

    The record is returned before the first tick; observers may see an
    execution_update for an id they have not been told about yet.
    """
    store: ExecutionStore = request.app.state.store
    runner: ExecutionRunner = request.app.state.runner
    try:
        execution = store.create(body)
        runner.start(execution.id)
        return execution
    except Exception as e:
        logger.error(f"Error creating execution: {e}")
        raise HTTPException(status_code=500, detail="Failed to create execution")

@router.get("/api/executions", response_model=List[ExecutionRecord])
async def list_executions(request: Request):
    """List every execution record"""
    return request.app.state.store.list()

@router.get("/api/executions/{execution_id}", response_model=ExecutionRecord)
async def get_execution(execution_id: str, request: Request):
    """Get one execution record"""
    execution = request.app.state.store.get(execution_id)
    if execution is None:
        raise HTTPException(status_code=404, detail="Execution not found")
    return execution

@router.put("/api/executions/{execution_id}/stop", response_model=ExecutionRecord)
async def stop_execution(execution_id: str, request: Request):
    """Stop a running execution; stopping a finished one returns it unchanged"""
    try:
        return request.app.state.runner.stop(execution_id)
    except ExecutionNotFoundError:
        raise HTTPException(status_code=404, detail="Execution not found")
    except Exception as e:
        logger.error(f"Error stopping execution {execution_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to stop execution")

async def _read_control_messages(websocket: WebSocket, subscription: Subscription):
    """Answer pings; the reply goes through the subscription queue so one task writes"""
    while True:
        frame = await websocket.receive()
        if frame["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(frame.get("code", 1000))
        raw = frame.get("text")
        if raw is None:
            logger.debug("Ignoring non-text WebSocket frame")
            continue
        try:
            message = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"WebSocket message error: {e}")
            continue

        if isinstance(message, dict) and message.get("type") == "ping":
            try:
                subscription.put_nowait({"type": "pong"})
            except asyncio.QueueFull:
                logger.warning("Observer queue full, pong not sent")

async def _forward_events(websocket: WebSocket, subscription: Subscription):
    while True:
        message = await subscription.get()
        await websocket.send_json(message)
        if subscription.dropped and subscription.queue.empty():
            logger.warning("Closing lagging WebSocket observer")
            await websocket.close(code=1013)
            return

@router.websocket("/ws")
async def execution_updates(websocket: WebSocket):
    """Stream every execution event to this client"""
    broadcaster: EventBroadcaster = websocket.app.state.broadcaster
    subscription = broadcaster.subscribe()
    await websocket.accept()
    logger.info("WebSocket client connected")

    reader = asyncio.create_task(_read_control_messages(websocket, subscription))
    writer = asyncio.create_task(_forward_events(websocket, subscription))
    try:
        done, pending = await asyncio.wait({reader, writer}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        for task in done:
            if task.cancelled():
                continue
            error = task.exception()
            if error is not None and not isinstance(error, WebSocketDisconnect):
                logger.warning(f"WebSocket session ended with error: {error}")
    finally:
        reader.cancel()
        writer.cancel()
        broadcaster.unsubscribe(subscription)
        if websocket.application_state == WebSocketState.CONNECTED:
            try:
                await websocket.close()
            except (RuntimeError, OSError) as e:
                logger.debug(f"WebSocket already closed: {e}")
        logger.info("WebSocket client disconnected")

def __getattr__(name: str):
    # `uvicorn crewdeck.api:app` builds the app on first lookup, not at import
    if name == "app":
        global app
        app = create_app()
        return app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
