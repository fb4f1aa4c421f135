"""
Chat service: one conversational turn from message to stored reply.

For an authenticated identity the turn runs under a per-identity lock, so
concurrent requests from the same identity are answered one at a time and
their memory pairs never interleave. The user entry, the assistant entry
and the usage increment are written in one repository transaction after
the text-generation call succeeds; a failed call leaves no trace.
"""

from __future__ import annotations

from typing import Optional

from ..auth.models import IdentityPublic
from ..core.config import ChatSettings
from ..core.exceptions import AuthError, ValidationError
from ..core.locks import acquire_lock, lock_key_chat
from ..core.logger import get_logger
from ..llm.client import TextGenerationClient
from ..stores.base import Repository
from .memory_window import MemoryWindow
from .models import ChatReply
from .plans import PLAN_BASIC
from .prompt_assembler import PromptAssembler
from .usage_counter import UsageCounter

logger = get_logger(__name__)


class ChatService:
    def __init__(
        self,
        settings: ChatSettings,
        repository: Repository,
        memory: MemoryWindow,
        usage: UsageCounter,
        assembler: PromptAssembler,
        client: TextGenerationClient,
    ):
        self.settings = settings
        self.repository = repository
        self.memory = memory
        self.usage = usage
        self.assembler = assembler
        self.client = client

    def _clean_message(self, message: Optional[str]) -> str:
        text = (message or "").strip()
        if not text:
            raise ValidationError("Message cannot be empty")
        if len(text) > self.settings.max_message_length:
            raise ValidationError(
                f"Message is longer than {self.settings.max_message_length} characters"
            )
        return text

    def chat(self, identity: Optional[IdentityPublic], message: Optional[str]) -> ChatReply:
        text = self._clean_message(message)

        if identity is None:
            if self.settings.require_auth_for_chat:
                raise AuthError("Not authenticated")
            return self._anonymous_turn(text)

        with acquire_lock(lock_key_chat(identity.id), timeout_seconds=self.settings.lock_timeout_seconds):
            window = self.memory.fetch(identity.id, self.assembler.memory_limit(identity))
            request = self.assembler.build(identity, window, text)
            result = self.client.generate(request)

            with self.repository.transaction():
                self.memory.append(identity.id, "user", text)
                self.memory.append(identity.id, "assistant", result.text)
                self.usage.increment(identity.id)

        logger.info(
            "Chat turn completed",
            identity_id=identity.id,
            plan=identity.plan,
            memory_entries=len(window),
            reply_length=len(result.text),
        )
        return ChatReply(text=result.text, plan=identity.plan, remembered=True)

    def _anonymous_turn(self, text: str) -> ChatReply:
        request = self.assembler.build(None, (), text)
        result = self.client.generate(request)
        logger.info("Anonymous chat turn completed", reply_length=len(result.text))
        return ChatReply(text=result.text, plan=PLAN_BASIC, remembered=False)
