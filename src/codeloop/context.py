"""
Context Builder - assembles what is sent to the model each iteration.

Outgoing context = system turn + history + ephemeral context note.

The conversation's history window already bounds how many turns exist.
On top of that a token budget is enforced here: when the estimate exceeds
it, the oldest history turns are dropped from the outgoing copy (never
from the conversation itself, and never the system turn) and a
TruncationEvent records what was lost.
"""

import logging
from dataclasses import dataclass
from typing import Any

from codeloop.config import ContextConfig
from codeloop.session import Conversation
from codeloop.types import Turn, TruncationEvent

logger = logging.getLogger(__name__)

MESSAGE_OVERHEAD_TOKENS = 4


@dataclass
class ContextBudget:
    """Tracks token budget usage."""
    total_budget: int
    used: int
    available: int

    @property
    def utilization(self) -> float:
        """Fraction of budget used."""
        return self.used / self.total_budget if self.total_budget > 0 else 0.0


@dataclass
class BuiltContext:
    """One iteration's outgoing messages and how they fit the budget."""
    messages: list[dict[str, Any]]
    budget: ContextBudget
    truncation: TruncationEvent | None = None


class ContextBuilder:
    """Builds outgoing message lists under a fixed token budget."""

    def __init__(self, config: ContextConfig | None = None) -> None:
        self.config = config or ContextConfig()

    def estimate_tokens(self, text: str) -> int:
        """
        Estimate token count from text.

        Rough approximation (chars / chars_per_token); what matters is that
        the budget is enforced, not that the estimate is exact.
        """
        return int(len(text) / self.config.chars_per_token)

    def estimate_turn_tokens(self, turn: Turn) -> int:
        return self.estimate_tokens(turn.content) + MESSAGE_OVERHEAD_TOKENS

    def build(self, conversation: Conversation, note: str = "") -> BuiltContext:
        """
        Build the messages for one model call.

        Args:
            conversation: Source of the system turn and history
            note: Ephemeral context appended as a trailing system message;
                never stored in the conversation

        Returns:
            BuiltContext with API-format messages and budget usage
        """
        system = conversation.system
        history = list(conversation.history)

        fixed = 0
        if system is not None:
            fixed += self.estimate_turn_tokens(system)
        if note:
            fixed += self.estimate_tokens(note) + MESSAGE_OVERHEAD_TOKENS

        available = self.config.available_budget - fixed
        costs = [self.estimate_turn_tokens(turn) for turn in history]
        used = sum(costs)

        truncation: TruncationEvent | None = None
        dropped = 0
        # Always keep the newest turn, even if it alone exceeds the budget.
        while used > available and dropped < len(history) - 1:
            used -= costs[dropped]
            dropped += 1

        if dropped:
            truncation = TruncationEvent(
                turns_dropped=dropped,
                tokens_dropped=sum(costs[:dropped]),
                oldest_dropped_content=history[0].content[:100],
            )
            logger.warning(
                f"Context truncated: dropped {dropped} turns "
                f"({truncation.tokens_dropped} tokens) to fit budget"
            )
            history = history[dropped:]

        messages: list[dict[str, Any]] = []
        if system is not None:
            messages.append(system.to_message())
        messages.extend(turn.to_wire_message() for turn in history)
        if note:
            messages.append({"role": "system", "content": note})

        total_used = fixed + used
        budget = ContextBudget(
            total_budget=self.config.available_budget,
            used=total_used,
            available=max(0, self.config.available_budget - total_used),
        )
        return BuiltContext(messages=messages, budget=budget, truncation=truncation)
