"""Liveness and readiness response schemas."""

from typing import Literal

from pydantic import BaseModel, ConfigDict


class HealthOut(BaseModel):
    """Body of a successful GET /health."""

    model_config = ConfigDict(frozen=True)

    status: Literal["healthy"] = "healthy"


class ReadyOut(BaseModel):
    """Body of a successful GET /ready."""

    model_config = ConfigDict(frozen=True)

    status: Literal["ready"] = "ready"
