from typing import Any, Dict, Optional, Union
from docqueue.core.protocol import Command
from docqueue.client.transport import ITransport, HttpTransport, TcpTransport


def make_transport(transport_or_url: Union[str, ITransport]) -> ITransport:
    if not isinstance(transport_or_url, str):
        return transport_or_url
    if transport_or_url.startswith("http"):
        return HttpTransport(transport_or_url)
    host, port = transport_or_url.split(":")
    return TcpTransport(host, int(port))


class ProducerClient:
    def __init__(self, transport_or_url: Union[str, ITransport], queue: str):
        self.transport = make_transport(transport_or_url)
        self.queue = queue

    async def close(self):
        await self.transport.close()

    async def send(
        self,
        payload: Dict[str, Any],
        earliest_get: Optional[int] = None,
        priority: float = 0.0,
    ) -> str:
        response = await self.transport.request(
            Command.SEND,
            {
                "queue": self.queue,
                "payload": payload,
                "earliest_get": earliest_get,
                "priority": priority,
            },
        )
        return response["id"]
