import asyncio
import json
from typing import Any, Callable, Dict, Optional

import httpx
import websockets
from websockets.exceptions import WebSocketException
from loguru import logger

from .exceptions import ExecutionNotFoundError, ExecutionValidationError
from .models import ExecutionConfig, ExecutionCreate, ExecutionRecord
from .observer import ObserverSession

class ControlClient:
    """HTTP client for the execution control surface"""

    def __init__(self, api_url: str = "http://localhost:8000", timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.api_url,
            timeout=httpx.Timeout(self.timeout),
            transport=self.transport,
        )

    async def create_execution(self, description: str, crew_id: Optional[str] = None,
                               config: Optional[ExecutionConfig] = None) -> ExecutionRecord:
        """Start a new execution; the description must not be blank"""
        if not description or not description.strip():
            raise ExecutionValidationError("Please provide a project description before starting execution.")

        payload = ExecutionCreate(
            crewId=crew_id,
            description=description.strip(),
            config=config or ExecutionConfig(),
        )
        async with self._client() as client:
            response = await client.post("/api/executions", json=payload.model_dump(mode="json"))
        return self._parse_record(response)

    async def stop_execution(self, execution_id: str) -> ExecutionRecord:
        async with self._client() as client:
            response = await client.put(f"/api/executions/{execution_id}/stop")
        return self._parse_record(response, execution_id)

    async def get_execution(self, execution_id: str) -> ExecutionRecord:
        async with self._client() as client:
            response = await client.get(f"/api/executions/{execution_id}")
        return self._parse_record(response, execution_id)

    @staticmethod
    def _parse_record(response: httpx.Response, execution_id: Optional[str] = None) -> ExecutionRecord:
        if response.status_code == 404:
            raise ExecutionNotFoundError(execution_id or "unknown")
        if response.status_code == 400:
            raise ExecutionValidationError(f"HTTP 400: {response.text}")
        response.raise_for_status()
        return ExecutionRecord.model_validate(response.json())

MessageHandler = Callable[[Dict[str, Any]], None]

class ObserverClient:
    """Keeps an ObserverSession subscribed to /ws, reconnecting on loss.

    Nothing is replayed after a reconnect; events published while the
    connection was down are simply missed.
    """

    def __init__(self, url: str = "ws://localhost:8000/ws", session: Optional[ObserverSession] = None,
                 reconnect_delay: float = 1.0, ping_interval: float = 25.0):
        self.url = url
        self.session = session or ObserverSession.metrics_panel()
        self.reconnect_delay = reconnect_delay
        self.ping_interval = ping_interval
        self.connected = False
        self.connections = 0
        self._running = False
        self._websocket = None
        self._handlers: Dict[str, MessageHandler] = {}

    def on_message(self, message_type: str, handler: MessageHandler) -> None:
        """Register a callback run after the session applies a message of this type"""
        self._handlers[message_type] = handler

    def remove_message_handler(self, message_type: str) -> None:
        self._handlers.pop(message_type, None)

    async def run(self) -> None:
        """Connect and consume until close() is called"""
        self._running = True
        while self._running:
            try:
                async with websockets.connect(self.url) as websocket:
                    self._websocket = websocket
                    self.connected = True
                    self.connections += 1
                    logger.info(f"Observer connected to {self.url}")

                    pinger = asyncio.create_task(self._keepalive(websocket))
                    try:
                        async for raw in websocket:
                            self._dispatch(raw)
                    finally:
                        pinger.cancel()
                        await asyncio.gather(pinger, return_exceptions=True)
            except (OSError, asyncio.TimeoutError, WebSocketException) as e:
                logger.warning(f"Observer connection to {self.url} lost: {e}")
            finally:
                self.connected = False
                self._websocket = None

            if self._running:
                await asyncio.sleep(self.reconnect_delay)

    async def close(self) -> None:
        self._running = False
        if self._websocket is not None:
            await self._websocket.close()

    async def _keepalive(self, websocket) -> None:
        while True:
            await asyncio.sleep(self.ping_interval)
            await websocket.send(json.dumps({"type": "ping"}))

    def _dispatch(self, raw) -> None:
        try:
            message = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse WebSocket message: {e}")
            return
        if not isinstance(message, dict):
            logger.warning(f"Ignoring non-object WebSocket message: {message!r}")
            return

        try:
            self.session.handle(message)
        except (ValueError, TypeError) as e:
            logger.warning(f"Dropping malformed {message.get('type')} message: {e}")
            return

        handler = self._handlers.get(message.get("type"))
        if handler:
            try:
                handler(message)
            except Exception as e:
                logger.warning(f"Observer handler for {message.get('type')} failed: {e}")
