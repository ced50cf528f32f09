"""Example operation schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ExampleOut(BaseModel):
    """Result of the example operation.

    timestamp is timezone-aware UTC and serializes as RFC 3339.
    """

    model_config = ConfigDict(frozen=True)

    message: str = Field(..., description="Greeting for the requested name")
    timestamp: datetime
    processed: bool = True
