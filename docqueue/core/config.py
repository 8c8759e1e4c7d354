import os
from typing import Mapping, Optional

from pydantic import BaseModel

ENV_PREFIX = "DOCQUEUE_"


class QueueConfig(BaseModel):
    mongo_url: str = "mongodb://localhost:27017"
    database: str = "docqueue"
    default_poll_ms: int = 50
    max_namespace_length: int = 127
    reaper_interval: float = 30.0

    @property
    def in_memory(self) -> bool:
        return self.mongo_url.startswith("memory://")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "QueueConfig":
        """Reads DOCQUEUE_MONGO_URL, DOCQUEUE_DATABASE, ... falling back to defaults."""
        environ = os.environ if environ is None else environ
        values = {}
        for field in cls.model_fields:
            key = ENV_PREFIX + field.upper()
            if key in environ:
                values[field] = environ[key]
        return cls(**values)
