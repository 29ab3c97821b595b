"""Conversation naming, called by the CLI after a conversation's first request."""

import logging

from codeloop.errors import TransportError
from codeloop.llm import ChatClient
from codeloop.prompts import build_title_prompt

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 50
FALLBACK_TITLE = "New conversation"


def clean_title(raw: str) -> str:
    """First line of raw, without quotes or a trailing period, at most 50 chars."""
    lines = [line.strip() for line in raw.strip().splitlines() if line.strip()]
    if not lines:
        return FALLBACK_TITLE
    title = lines[0].strip("\"'`*# ").rstrip(".").strip()
    if not title:
        return FALLBACK_TITLE
    if len(title) > MAX_TITLE_LENGTH:
        title = title[: MAX_TITLE_LENGTH - 3].rstrip() + "..."
    return title


def generate_title(llm: ChatClient, first_message: str) -> str:
    """Ask the model for a short title; falls back to a fixed one if it is unreachable."""
    try:
        response = llm.chat(build_title_prompt(first_message), temperature=0.3, max_tokens=30)
    except TransportError as e:
        logger.warning(f"Title generation failed: {e}")
        return FALLBACK_TITLE
    return clean_title(response.content)
