"""Error envelope schema."""

from pydantic import BaseModel, ConfigDict


class ErrorOut(BaseModel):
    """Error payload: a single generic, human-readable message."""

    model_config = ConfigDict(frozen=True)

    error: str
