import httpx
import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple
from docqueue.core.errors import RemoteQueueError
from docqueue.core.protocol import Command, pack_message, read_message


class ITransport(ABC):
    @abstractmethod
    async def request(self, command: Command, payload: Dict[str, Any]) -> Any:
        pass

    @abstractmethod
    async def close(self):
        pass


class HttpTransport(ITransport):
    def __init__(
        self,
        base_url: str,
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def _route(self, command: Command, payload: Dict[str, Any]) -> Tuple[str, Dict]:
        queue = payload.pop("queue")
        prefix = f"{self.base_url}/queues/{queue}"

        if command == Command.SEND:
            return f"{prefix}/messages", payload
        if command == Command.GET:
            return f"{prefix}/get", payload
        if command == Command.COUNT:
            return f"{prefix}/count", payload
        if command == Command.ENSURE_GET_INDEX:
            return f"{prefix}/indexes/get", payload
        if command == Command.ENSURE_COUNT_INDEX:
            return f"{prefix}/indexes/count", payload

        message = payload.pop("message")
        message_url = f"{prefix}/messages/{message['id']}"
        if command == Command.ACK:
            return f"{message_url}/ack", payload
        if command == Command.ACK_SEND:
            return f"{message_url}/ack_send", payload
        if command == Command.REQUEUE:
            payload["payload"] = {k: v for k, v in message.items() if k != "id"}
            return f"{message_url}/requeue", payload
        if command == Command.UPDATE_RESET_DURATION:
            return f"{message_url}/reset_duration", payload

        raise ValueError(f"Unknown command for HTTP transport: {command}")

    async def request(self, command: Command, payload: Dict[str, Any]) -> Any:
        url, body = self._route(command, dict(payload))
        response = await self._client.post(url, json=body)

        if response.status_code == 404 and command in (
            Command.ACK_SEND,
            Command.REQUEUE,
            Command.UPDATE_RESET_DURATION,
        ):
            return {"updated": False}
        if response.is_error:
            try:
                detail = response.json().get("detail", response.text)
            except ValueError:
                detail = response.text
            raise RemoteQueueError(str(detail), status_code=response.status_code)
        return response.json()

    async def close(self):
        await self._client.aclose()


class TcpTransport(ITransport):
    def __init__(self, host: str, port: int, timeout: float = 60.0):
        self.host = host
        self.port = port
        self.timeout = timeout
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._lock = asyncio.Lock()

    async def _ensure_connected(self):
        if self._writer is None:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port), self.timeout
            )

    async def _roundtrip(self, command: Command, payload: Dict[str, Any]) -> Any:
        await self._ensure_connected()
        writer = self._writer
        reader = self._reader
        if writer is None or reader is None:
            raise ConnectionError("Failed to connect to server")

        writer.write(pack_message(command, payload))
        await writer.drain()
        version, cmd, body = await asyncio.wait_for(read_message(reader), self.timeout)
        return body

    async def request(self, command: Command, payload: Dict[str, Any]) -> Any:
        async with self._lock:
            try:
                body = await self._roundtrip(command, payload)
            except (
                asyncio.IncompleteReadError,
                ConnectionResetError,
                BrokenPipeError,
                ConnectionError,
            ):
                # Try to reconnect once
                self._writer = None
                self._reader = None
                body = await self._roundtrip(command, payload)

            if isinstance(body, dict) and "error" in body:
                raise RemoteQueueError(body["error"])
            return body

    async def close(self):
        if self._writer:
            self._writer.close()
            await self._writer.wait_closed()
            self._writer = None
            self._reader = None
