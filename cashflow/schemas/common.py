"""Pydantic schemas shared across routers."""

from __future__ import annotations

from pydantic import BaseModel


class LogoutResponse(BaseModel):
    message: str


class DeleteResponse(BaseModel):
    success: bool
    message: str


class HealthResponse(BaseModel):
    db: bool
    version: str
