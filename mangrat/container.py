"""
Service wiring.

build_services() creates every component around one injected Repository
and TextGenerationClient. Nothing below this module reaches for globals.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .auth.credentials import CredentialStore
from .auth.sessions import SessionManager
from .core.config import Settings
from .llm.client import TextGenerationClient, build_client
from .services.chat_service import ChatService
from .services.memory_window import MemoryWindow
from .services.prompt_assembler import PromptAssembler
from .services.usage_counter import UsageCounter
from .stores import Repository, build_repository


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Services:
    settings: Settings
    repository: Repository
    credentials: CredentialStore
    sessions: SessionManager
    memory: MemoryWindow
    usage: UsageCounter
    assembler: PromptAssembler
    client: TextGenerationClient
    chat: ChatService

    def close(self) -> None:
        self.repository.close()


def build_services(
    settings: Settings,
    repository: Optional[Repository] = None,
    client: Optional[TextGenerationClient] = None,
    clock: Callable[[], datetime] = _utcnow,
) -> Services:
    repository = repository or build_repository(settings.storage)
    client = client or build_client(settings.llm)

    credentials = CredentialStore(repository, bcrypt_rounds=settings.auth.bcrypt_rounds, clock=clock)
    sessions = SessionManager(
        repository,
        ttl=timedelta(hours=settings.auth.session_ttl_hours),
        clock=clock,
    )
    memory = MemoryWindow(repository, clock=clock)
    usage = UsageCounter(repository, clock=clock)
    assembler = PromptAssembler(settings.chat)
    chat = ChatService(settings.chat, repository, memory, usage, assembler, client)

    return Services(
        settings=settings,
        repository=repository,
        credentials=credentials,
        sessions=sessions,
        memory=memory,
        usage=usage,
        assembler=assembler,
        client=client,
        chat=chat,
    )
