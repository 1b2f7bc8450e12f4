"""Shared Pydantic schemas for STK-Enroll."""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    service: str = "stk-enroll"


class ErrorResponse(BaseModel):
    message: str
    error: str | None = None
