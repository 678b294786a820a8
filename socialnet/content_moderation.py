"""
Content moderation for user posts.

Sends text to the OpenAI moderation endpoint and maps its verdict onto
APPROVED / FLAGGED / REJECTED. The API key is read from the dynamic
configuration store, so an admin can rotate it without a restart.

When moderation cannot run (no key, network error, bad response) content is
FLAGGED for human review rather than published unchecked.

The same client also produces short post summaries and detects the
language a post is written in.
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI
from sqlalchemy.orm import Session

from . import config_store
from .config import settings
from .constants import (
    CONTENT_AI_MODEL,
    DEFAULT_CONTENT_LANGUAGE,
    LANGUAGE_MAX_TOKENS,
    MODERATION_FALLBACK_SCORE,
    MODERATION_UNAVAILABLE_MESSAGE,
    SUMMARY_EMPTY_MESSAGE,
    SUMMARY_MAX_TOKENS,
    SUMMARY_UNAVAILABLE_MESSAGE,
)
from .exceptions import MissingAPIKeyError

logger = logging.getLogger(__name__)


class ModerationResult(str, Enum):
    APPROVED = "APPROVED"
    FLAGGED = "FLAGGED"
    REJECTED = "REJECTED"


@dataclass
class ModerationResponse:
    result: ModerationResult
    categories: List[str] = field(default_factory=list)
    score: float = 0.0
    explanation: Optional[str] = None


_client: Optional[AsyncOpenAI] = None
_client_key: Optional[str] = None
_client_lock = threading.Lock()


def get_openai_client(db: Session) -> AsyncOpenAI:
    """
    Client for the currently configured OPENAI_API_KEY.

    One client (and its connection pool) is reused until the key is rotated.
    """
    global _client, _client_key

    api_key = config_store.env(db, "OPENAI_API_KEY", "")
    if not api_key:
        raise MissingAPIKeyError("OPENAI_API_KEY")

    with _client_lock:
        if _client is None or _client_key != api_key:
            _client = AsyncOpenAI(api_key=api_key)
            _client_key = api_key
        return _client


def _as_dict(obj: Any) -> Dict[str, Any]:
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    if hasattr(obj, "model_dump"):
        return obj.model_dump(by_alias=True)
    return dict(vars(obj))


def classify(flagged: bool, categories: Dict[str, Any], category_scores: Dict[str, Any]) -> ModerationResponse:
    """
    Turn a raw moderation result into a decision.

    score is the highest category score. Flagged content above the reject
    threshold is REJECTED, other flagged content is FLAGGED.
    """
    flagged_categories = [name for name, hit in categories.items() if hit]
    scores = [float(s) for s in category_scores.values() if isinstance(s, (int, float))]
    max_score = max(scores) if scores else 0.0

    if flagged and max_score > settings.moderation_reject_threshold:
        result = ModerationResult.REJECTED
    elif flagged:
        result = ModerationResult.FLAGGED
    else:
        result = ModerationResult.APPROVED

    return ModerationResponse(
        result=result,
        categories=flagged_categories,
        score=max_score,
        explanation=f"Content flagged for: {', '.join(flagged_categories)}" if flagged_categories else None,
    )


async def moderate_content(db: Session, content: str, client: Optional[AsyncOpenAI] = None) -> ModerationResponse:
    """
    Moderate a piece of user content.

    Args:
        db: Session used to read the API key
        content: Text to check
        client: Optional pre-built client (tests inject a fake)

    Returns:
        ModerationResponse; FLAGGED with category "error" if the service is unavailable
    """
    try:
        client = client or get_openai_client(db)
        response = await client.moderations.create(input=content)
        result = response.results[0]

        return classify(
            bool(result.flagged),
            _as_dict(result.categories),
            _as_dict(result.category_scores),
        )
    except Exception as e:
        logger.warning(f"Content moderation error: {e}")
        return ModerationResponse(
            result=ModerationResult.FLAGGED,
            categories=["error"],
            score=MODERATION_FALLBACK_SCORE,
            explanation=MODERATION_UNAVAILABLE_MESSAGE,
        )


# =============================================================================
# Summaries & Language Detection
# =============================================================================

async def _complete(client: AsyncOpenAI, system_message: str, user_message: str, max_tokens: int) -> Optional[str]:
    response = await client.chat.completions.create(
        model=CONTENT_AI_MODEL,
        messages=[
            {"role": "system", "content": system_message},
            {"role": "user", "content": user_message},
        ],
        max_tokens=max_tokens,
    )
    return response.choices[0].message.content


async def generate_content_summary(db: Session, content: str, client: Optional[AsyncOpenAI] = None) -> str:
    """Summarize content in one or two sentences; "Summary unavailable" if the service fails."""
    try:
        client = client or get_openai_client(db)
        summary = await _complete(
            client,
            "You are a helpful assistant that summarizes content in 1-2 sentences.",
            f"Summarize the following content in 1-2 sentences: {content}",
            SUMMARY_MAX_TOKENS,
        )
    except Exception as e:
        logger.warning(f"Content summary generation error: {e}")
        return SUMMARY_UNAVAILABLE_MESSAGE

    return summary or SUMMARY_EMPTY_MESSAGE


async def detect_content_language(db: Session, content: str, client: Optional[AsyncOpenAI] = None) -> str:
    """Language code of the content (e.g. "en", "es"); defaults to "en" when detection fails."""
    try:
        client = client or get_openai_client(db)
        language = await _complete(
            client,
            'Detect the language of the following text and respond with only the language code (e.g., "en", "es", "fr").',
            content,
            LANGUAGE_MAX_TOKENS,
        )
    except Exception as e:
        logger.warning(f"Language detection error: {e}")
        return DEFAULT_CONTENT_LANGUAGE

    return (language or "").strip() or DEFAULT_CONTENT_LANGUAGE
