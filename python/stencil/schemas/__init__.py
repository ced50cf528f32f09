"""Pydantic schemas for response envelopes.

All schemas are re-exported here for convenient imports.
"""

from stencil.schemas.envelope import ErrorOut
from stencil.schemas.example import ExampleOut
from stencil.schemas.health import HealthOut, ReadyOut

__all__ = [
    "ErrorOut",
    "ExampleOut",
    "HealthOut",
    "ReadyOut",
]
