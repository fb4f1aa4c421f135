"""Prompt Assembler - renders preamble, memory window and new message into one prompt"""

from __future__ import annotations

from typing import Optional, Sequence

from ..auth.models import IdentityPublic
from ..core.config import ChatSettings, PlanTier
from ..core.logger import get_logger
from ..llm.models import GenerationRequest
from .models import MemoryEntry
from .plans import PLAN_BASIC, get_plan_tier

logger = get_logger(__name__)

RESPONSE_CUE = "assistant:"


class PromptAssembler:
    """
    Builds generation requests with plan-tiered parameters.

    Layout of every prompt:

        <preamble>

        user: <older message>
        assistant: <older reply>
        ...
        user: <new message>
        assistant:

    Anonymous callers (identity None) get the basic tier and no memory.
    """

    def __init__(self, settings: ChatSettings):
        self.settings = settings

    def tier_for(self, identity: Optional[IdentityPublic]) -> PlanTier:
        plan = identity.plan if identity is not None else PLAN_BASIC
        return get_plan_tier(self.settings, plan)

    def memory_limit(self, identity: Optional[IdentityPublic]) -> int:
        return self.tier_for(identity).memory_window

    def render(self, memory: Sequence[MemoryEntry], message: str) -> str:
        lines = [f"{entry.role}: {entry.content}" for entry in memory]
        lines.append(f"user: {message}")
        lines.append(RESPONSE_CUE)
        return f"{self.settings.preamble.strip()}\n\n" + "\n".join(lines)

    def build(
        self,
        identity: Optional[IdentityPublic],
        memory: Sequence[MemoryEntry],
        message: str,
    ) -> GenerationRequest:
        if identity is None:
            memory = ()
        tier = self.tier_for(identity)
        prompt = self.render(memory, message)

        logger.debug(
            "Prompt built",
            identity_id=identity.id if identity else None,
            plan=identity.plan if identity else PLAN_BASIC,
            memory_entries=len(memory),
            prompt_length=len(prompt),
        )
        return GenerationRequest(
            prompt=prompt,
            max_tokens=tier.max_tokens,
            temperature=tier.temperature,
        )
