from __future__ import annotations

from pydantic import BaseModel, Field

from fieldflow.domain.session import MAX_SESSION_MINUTES
from fieldflow.enums import CommandAction


class CommandEnvelope(BaseModel):
    """Control message published on ``control/{deviceId}/command``.

    ``correlationId`` is the originating session id; devices echo it back on
    their control-response channel.
    """

    action: CommandAction
    duration: int | None = Field(default=None, ge=1, le=MAX_SESSION_MINUTES)
    correlationId: str
    issuedAt: str
    serverTime: str | None = None

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)
