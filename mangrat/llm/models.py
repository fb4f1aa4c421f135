"""Typed request/result exchanged with the text-generation service."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class GenerationRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    prompt: str
    max_tokens: int
    temperature: float


class GenerationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
