import asyncio
import logging
from typing import Any, Dict, Optional

from docqueue.core.codec import id_to_wire, message_from_wire, message_to_wire
from docqueue.core.errors import QueueError
from docqueue.core.protocol import Command, read_message, pack_message
from docqueue.server.registry import QueueRegistry

logger = logging.getLogger(__name__)


class TcpFrontend:
    def __init__(self, registry: QueueRegistry, host: str = "0.0.0.0", port: int = 9000):
        self.registry = registry
        self.host = host
        self.port = port
        self._server: Optional[asyncio.Server] = None

    async def handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ):
        addr = writer.get_extra_info("peername")
        logger.debug(f"New connection from {addr}")

        try:
            while True:
                try:
                    version, command, body = await read_message(reader)
                except asyncio.IncompleteReadError:
                    break

                response_body = await self.process_command(command, body)
                writer.write(pack_message(command, response_body))
                await writer.drain()
        except Exception as e:
            logger.error(f"Error handling client {addr}: {e}")
        finally:
            writer.close()
            await writer.wait_closed()

    async def process_command(self, command: int, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            queue = self.registry.get_queue(body["queue"])

            if command == Command.SEND:
                message_id = await queue.send(
                    body["payload"], body.get("earliest_get"), body.get("priority", 0.0)
                )
                return {"id": id_to_wire(message_id)}

            elif command == Command.GET:
                message = await queue.get(
                    body.get("query", {}),
                    body["running_reset_duration"],
                    body.get("wait_duration", 0),
                    body.get("poll_duration"),
                )
                return {"message": message_to_wire(message)}

            elif command == Command.ACK:
                acked = await queue.ack(message_from_wire(body["message"]))
                return {"acked": acked}

            elif command == Command.ACK_SEND:
                updated = await queue.ack_send(
                    message_from_wire(body["message"]),
                    body["payload"],
                    body.get("earliest_get", 0),
                    body.get("priority", 0.0),
                    body.get("new_timestamp", True),
                )
                return {"updated": updated}

            elif command == Command.REQUEUE:
                updated = await queue.requeue(
                    message_from_wire(body["message"]),
                    body.get("earliest_get", 0),
                    body.get("priority", 0.0),
                    body.get("new_timestamp", True),
                )
                return {"updated": updated}

            elif command == Command.UPDATE_RESET_DURATION:
                updated = await queue.update_reset_duration(
                    message_from_wire(body["message"]), body["reset_duration"]
                )
                return {"updated": updated}

            elif command == Command.COUNT:
                count = await queue.count(body.get("query", {}), body.get("running"))
                return {"count": count}

            elif command == Command.ENSURE_GET_INDEX:
                await queue.ensure_get_index(
                    body.get("before_sort_keys", {}), body.get("after_sort_keys")
                )
                return {"status": "ok"}

            elif command == Command.ENSURE_COUNT_INDEX:
                await queue.ensure_count_index(body["keys"], body["include_running"])
                return {"status": "ok"}

            return {"error": f"Unknown command: {command}"}
        except (QueueError, KeyError) as e:
            logger.warning(f"Rejected command {command}: {e!r}")
            return {"error": str(e)}
        except Exception as e:
            logger.exception("Error processing command")
            return {"error": str(e)}

    async def start(self):
        self._server = await asyncio.start_server(
            self.handle_client, self.host, self.port
        )
        addr = self._server.sockets[0].getsockname()
        logger.info(f"TCP Frontend serving on {addr}")
        async with self._server:
            await self._server.serve_forever()

    async def stop(self):
        if self._server:
            self._server.close()
            await self._server.wait_closed()
