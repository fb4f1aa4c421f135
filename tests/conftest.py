"""Shared fixtures: in-memory services, a controllable clock and a scripted LLM client."""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

from mangrat.container import build_services
from mangrat.core.config import Settings
from mangrat.llm.client import TextGenerationClient
from mangrat.llm.models import GenerationRequest, GenerationResult
from mangrat.stores.memory_store import InMemoryRepository
from mangrat_web.app import create_app


class MutableClock:
    """Clock whose time only moves when a test says so."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeClient(TextGenerationClient):
    """Records every request and answers from a script (text or exception)."""

    def __init__(self, replies: Optional[list] = None):
        self.replies = list(replies or [])
        self.requests: List[GenerationRequest] = []

    def generate(self, request: GenerationRequest) -> GenerationResult:
        self.requests.append(request)
        reply = self.replies.pop(0) if self.replies else f"reply {len(self.requests)}"
        if isinstance(reply, BaseException):
            raise reply
        return GenerationResult(text=reply)


@pytest.fixture
def settings() -> Settings:
    settings = Settings()
    settings.storage.backend = "memory"
    settings.auth.bcrypt_rounds = 4
    settings.chat.lock_timeout_seconds = 2
    return settings


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def services(settings, repository, fake_client, clock):
    return build_services(settings, repository=repository, client=fake_client, clock=clock)


@pytest.fixture
def client(services) -> TestClient:
    return TestClient(create_app(services=services))


