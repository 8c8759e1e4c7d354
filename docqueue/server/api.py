import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from docqueue.core.codec import id_from_wire, id_to_wire, message_to_wire
from docqueue.core.config import QueueConfig
from docqueue.core.errors import IndexSetupError, InvalidArgumentError
from .registry import QueueRegistry

logger = logging.getLogger(__name__)


class GetIndexRequest(BaseModel):
    before_sort_keys: Dict[str, Any] = {}
    after_sort_keys: Optional[Dict[str, Any]] = None


class CountIndexRequest(BaseModel):
    keys: Dict[str, Any]
    include_running: Any = False


class SendRequest(BaseModel):
    payload: Dict[str, Any]
    earliest_get: Any = None
    priority: Any = 0.0


class GetRequest(BaseModel):
    query: Dict[str, Any] = {}
    running_reset_duration: Any
    wait_duration: Any = 0
    poll_duration: Any = None


class AckSendRequest(BaseModel):
    payload: Dict[str, Any]
    earliest_get: Any = 0
    priority: Any = 0.0
    new_timestamp: Any = True


class ResetDurationRequest(BaseModel):
    reset_duration: Any


class CountRequest(BaseModel):
    query: Dict[str, Any] = {}
    running: Any = None


def create_app(registry: Optional[QueueRegistry] = None) -> FastAPI:
    registry = registry or QueueRegistry(QueueConfig.from_env())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        registry.start_reaper()
        yield
        await registry.close()

    app = FastAPI(title="docqueue", lifespan=lifespan)
    app.state.registry = registry

    @app.exception_handler(InvalidArgumentError)
    async def invalid_argument(request: Request, exc: InvalidArgumentError):
        logger.warning(f"Rejected {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(IndexSetupError)
    async def index_setup_failed(request: Request, exc: IndexSetupError):
        logger.error(f"Index setup failed for {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    def message_ref(message_id: str) -> Dict[str, Any]:
        return {"id": id_from_wire(message_id)}

    @app.post("/queues/{name}/indexes/get")
    async def ensure_get_index(name: str, request: GetIndexRequest):
        await registry.get_queue(name).ensure_get_index(
            request.before_sort_keys, request.after_sort_keys
        )
        return {"status": "ok"}

    @app.post("/queues/{name}/indexes/count")
    async def ensure_count_index(name: str, request: CountIndexRequest):
        await registry.get_queue(name).ensure_count_index(
            request.keys, request.include_running
        )
        return {"status": "ok"}

    @app.post("/queues/{name}/messages")
    async def send(name: str, request: SendRequest):
        message_id = await registry.get_queue(name).send(
            request.payload, request.earliest_get, request.priority
        )
        return {"id": id_to_wire(message_id)}

    @app.post("/queues/{name}/get")
    async def get(name: str, request: GetRequest):
        message = await registry.get_queue(name).get(
            request.query,
            request.running_reset_duration,
            request.wait_duration,
            request.poll_duration,
        )
        return {"message": message_to_wire(message)}

    @app.post("/queues/{name}/messages/{message_id}/ack")
    async def ack(name: str, message_id: str):
        acked = await registry.get_queue(name).ack(message_ref(message_id))
        return {"acked": acked}

    @app.post("/queues/{name}/messages/{message_id}/ack_send")
    async def ack_send(name: str, message_id: str, request: AckSendRequest):
        updated = await registry.get_queue(name).ack_send(
            message_ref(message_id),
            request.payload,
            request.earliest_get,
            request.priority,
            request.new_timestamp,
        )
        if not updated:
            raise HTTPException(status_code=404, detail=f"Message {message_id} not found")
        return {"updated": updated}

    @app.post("/queues/{name}/messages/{message_id}/requeue")
    async def requeue(name: str, message_id: str, request: AckSendRequest):
        message = {**request.payload, **message_ref(message_id)}
        updated = await registry.get_queue(name).requeue(
            message, request.earliest_get, request.priority, request.new_timestamp
        )
        if not updated:
            raise HTTPException(status_code=404, detail=f"Message {message_id} not found")
        return {"updated": updated}

    @app.post("/queues/{name}/messages/{message_id}/reset_duration")
    async def update_reset_duration(
        name: str, message_id: str, request: ResetDurationRequest
    ):
        updated = await registry.get_queue(name).update_reset_duration(
            message_ref(message_id), request.reset_duration
        )
        if not updated:
            raise HTTPException(
                status_code=404, detail=f"Message {message_id} is not running"
            )
        return {"updated": updated}

    @app.post("/queues/{name}/count")
    async def count(name: str, request: CountRequest):
        total = await registry.get_queue(name).count(request.query, request.running)
        return {"count": total}

    return app


app = create_app()
