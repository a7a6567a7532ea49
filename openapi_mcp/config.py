from pathlib import Path
from typing import List

from pydantic import BaseModel, Field

from .gateway import DEFAULT_MESSAGE_PATH, DEFAULT_STREAM_PATH
from .proxy import DEFAULT_TIMEOUT

ENV_PREFIX = "OPENAPI_MCP_"


class Settings(BaseModel):
    """Runtime configuration assembled by the CLI."""

    spec:         Path
    target:       str = "http://localhost:8080"
    host:         str = "127.0.0.1"
    port:         int = Field(default=3000, ge=0, le=65535)
    stream_path:  str = DEFAULT_STREAM_PATH
    message_path: str = DEFAULT_MESSAGE_PATH
    timeout:      float = Field(default=DEFAULT_TIMEOUT, gt=0)
    methods:      List[str] = Field(default_factory=list)
    log_level:    str = "INFO"
    json_logs:    bool = False

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}{self.stream_path}"
