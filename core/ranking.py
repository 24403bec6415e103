# core/ranking.py
import os
from typing import Callable, Optional, Sequence

from openai import OpenAI

from .logger import get_logger
from .models import ItemRecord
from .report import build_ai_input, build_ranking_prompt

logger = get_logger(__name__)

AI_API_KEY = os.getenv("GEMINI_API_KEY", "").strip()
AI_BASE_URL = os.getenv(
    "AI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta/openai/"
).strip()
AI_MODEL = os.getenv("AI_MODEL", "gemini-2.0-flash").strip()

USER_PROMPT = "Here are the items that I can pick from:"


def create_client() -> Optional[OpenAI]:
    if not AI_API_KEY:
        logger.error("GEMINI_API_KEY not set; cannot generate an AI ranking.")
        return None
    return OpenAI(api_key=AI_API_KEY, base_url=AI_BASE_URL)


def generate_ranking(
    records: Sequence[ItemRecord],
    client=None,
    on_chunk: Callable[[str], None] | None = None,
    model: str | None = None,
) -> Optional[str]:
    """
    Ask the model for a cost/benefit ranking of the given items.
    The answer is streamed; every chunk is passed to on_chunk as it arrives.
    Returns the full markdown text, or None when the request failed.
    """
    if client is None:
        client = create_client()
        if client is None:
            return None

    messages = [
        {"role": "system", "content": build_ranking_prompt(records)},
        {"role": "user", "content": f"{USER_PROMPT} {build_ai_input(records)}"},
    ]

    parts = []
    try:
        stream = client.chat.completions.create(
            model=model or AI_MODEL,
            messages=messages,
            stream=True,
        )
        for chunk in stream:
            if not chunk.choices:
                continue
            content = chunk.choices[0].delta.content
            if content:
                parts.append(content)
                if on_chunk is not None:
                    on_chunk(content)
    except Exception as e:
        logger.error("AI ranking request failed: %s", e)
        return None

    text = "".join(parts)
    if not text.strip():
        logger.error("AI ranking response was empty.")
        return None
    return text
