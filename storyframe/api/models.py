"""Pydantic request models for API endpoints."""

from pydantic import BaseModel


class InputBody(BaseModel):
    variable: str
    value: str
