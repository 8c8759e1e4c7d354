from typing import Any, Dict, Optional, Union
from docqueue.core.protocol import Command
from docqueue.client.producer import make_transport
from docqueue.client.transport import ITransport


class ConsumerClient:
    """Remote counterpart of DocumentQueue's consuming side; ids are hex strings."""

    def __init__(self, transport_or_url: Union[str, ITransport], queue: str):
        self.transport = make_transport(transport_or_url)
        self.queue = queue

    async def close(self):
        await self.transport.close()

    async def _request(self, command: Command, **body: Any) -> Any:
        return await self.transport.request(command, {"queue": self.queue, **body})

    async def get(
        self,
        query: Dict[str, Any],
        running_reset_duration: int,
        wait_duration: int = 0,
        poll_duration: Optional[int] = None,
    ) -> Optional[Dict[str, Any]]:
        response = await self._request(
            Command.GET,
            query=query,
            running_reset_duration=running_reset_duration,
            wait_duration=wait_duration,
            poll_duration=poll_duration,
        )
        return response["message"]

    async def ack(self, message: Dict[str, Any]) -> bool:
        response = await self._request(Command.ACK, message={"id": message["id"]})
        return response["acked"]

    async def ack_send(
        self,
        message: Dict[str, Any],
        payload: Dict[str, Any],
        earliest_get: int = 0,
        priority: float = 0.0,
        new_timestamp: bool = True,
    ) -> bool:
        response = await self._request(
            Command.ACK_SEND,
            message={"id": message["id"]},
            payload=payload,
            earliest_get=earliest_get,
            priority=priority,
            new_timestamp=new_timestamp,
        )
        return response["updated"]

    async def requeue(
        self,
        message: Dict[str, Any],
        earliest_get: int = 0,
        priority: float = 0.0,
        new_timestamp: bool = True,
    ) -> bool:
        response = await self._request(
            Command.REQUEUE,
            message=message,
            earliest_get=earliest_get,
            priority=priority,
            new_timestamp=new_timestamp,
        )
        return response["updated"]

    async def update_reset_duration(
        self, message: Dict[str, Any], reset_duration: int
    ) -> bool:
        response = await self._request(
            Command.UPDATE_RESET_DURATION,
            message={"id": message["id"]},
            reset_duration=reset_duration,
        )
        return response["updated"]

    async def count(self, query: Dict[str, Any], running: Optional[bool] = None) -> int:
        response = await self._request(Command.COUNT, query=query, running=running)
        return response["count"]

    async def ensure_get_index(
        self,
        before_sort_keys: Dict[str, int],
        after_sort_keys: Optional[Dict[str, int]] = None,
    ):
        await self._request(
            Command.ENSURE_GET_INDEX,
            before_sort_keys=before_sort_keys,
            after_sort_keys=after_sort_keys,
        )

    async def ensure_count_index(self, keys: Dict[str, int], include_running: bool):
        await self._request(
            Command.ENSURE_COUNT_INDEX, keys=keys, include_running=include_running
        )
