from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Turn(BaseModel):
    """
    One message in a conversation. Immutable once created.
    """
    role: Literal["user", "assistant"]
    content: str = Field(..., min_length=1)

    model_config = ConfigDict(extra="ignore", frozen=True)

    @field_validator("role", mode="before")
    @classmethod
    def _legacy_role(cls, value: object) -> object:
        # Records written by the first version of the service use "bot".
        return "assistant" if value == "bot" else value

    @classmethod
    def user(cls, content: str) -> "Turn":
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str) -> "Turn":
        return cls(role="assistant", content=content)
