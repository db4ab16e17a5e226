import uuid
from collections import defaultdict
from typing import DefaultDict, Set

import structlog
from fastapi import WebSocket

logger = structlog.get_logger(__name__)


class ConnectionManager:
    def __init__(self) -> None:
        self._channels: DefaultDict[uuid.UUID, Set[WebSocket]] = defaultdict(set)

    async def connect(self, poll_id: uuid.UUID, websocket: WebSocket) -> None:
        await websocket.accept()
        self._channels[poll_id].add(websocket)

    def disconnect(self, poll_id: uuid.UUID, websocket: WebSocket) -> None:
        self._channels[poll_id].discard(websocket)
        if not self._channels[poll_id]:
            self._channels.pop(poll_id, None)

    def subscribers(self, poll_id: uuid.UUID) -> int:
        return len(self._channels.get(poll_id, ()))

    async def broadcast(self, poll_id: uuid.UUID, payload: dict) -> None:
        websockets = list(self._channels.get(poll_id, []))
        for websocket in websockets:
            try:
                await websocket.send_json(payload)
            except Exception as exc:
                logger.warning(
                    "websocket_send_failed", poll_id=str(poll_id), error=str(exc)
                )
                self.disconnect(poll_id, websocket)

    async def close_channel(self, poll_id: uuid.UUID, code: int = 1000) -> None:
        for websocket in self._channels.pop(poll_id, set()):
            try:
                await websocket.close(code=code)
            except Exception as exc:
                logger.warning(
                    "websocket_close_failed", poll_id=str(poll_id), error=str(exc)
                )
