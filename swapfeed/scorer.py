from __future__ import annotations

"""
External relevance scorer.

The scorer is a chat-completions endpoint: we send the liked items and the
candidate pool as JSON inside a natural-language prompt and expect a JSON
array of {"id", "score", "reason"} back. The reply is free text, so parsing
is two-stage: extract the array (optionally from a ```json fence), then
json.loads it. Anything that fails either stage raises ScorerError and the
caller falls back to recency order.
"""

import json
import re
from typing import Any, Dict, List, Optional, Sequence

import httpx
from loguru import logger
from pydantic import ValidationError

from .config import (
    HTTP_CONNECT_TIMEOUT,
    HTTP_USER_AGENT,
    SCORER_SYSTEM_PROMPT,
    CandidateItem,
    ScoreEntry,
    Settings,
)
from .errors import ScorerError

_FENCED_JSON_RX = re.compile(r"```json\s*([\s\S]*?)\s*```")
_BARE_ARRAY_RX = re.compile(r"\[[\s\S]*\]")


# ---------------------------------------------------------------------------
# Prompt construction
# ---------------------------------------------------------------------------

def project_history(liked: Sequence[CandidateItem]) -> List[Dict[str, Any]]:
    """Liked items without price or identifiers."""
    return [
        {
            "category": item.category,
            "title": item.title,
            "description": item.description or "",
        }
        for item in liked
    ]


def project_candidates(pool: Sequence[CandidateItem]) -> List[Dict[str, Any]]:
    return [
        {
            "id": item.id,
            "category": item.category,
            "title": item.title,
            "description": item.description,
            "price": item.price,
        }
        for item in pool
    ]


def build_prompt(liked: Sequence[CandidateItem], pool: Sequence[CandidateItem]) -> str:
    liked_json = json.dumps(project_history(liked), indent=2, ensure_ascii=False)
    pool_json = json.dumps(project_candidates(pool), indent=2, ensure_ascii=False)
    return (
        "Based on these items a user has liked:\n"
        f"{liked_json}\n"
        "\n"
        "Analyze the user's preferences and identify:\n"
        "1. Preferred categories\n"
        "2. Price range preferences\n"
        "3. Common themes or interests\n"
        "4. Item characteristics they value\n"
        "\n"
        "Now, score the following items from 0-10 based on how well they match "
        "the user's preferences:\n"
        f"{pool_json}\n"
        "\n"
        'Return ONLY a JSON array of objects with format: '
        '[{"id": "item-id", "score": 8.5, "reason": "brief explanation"}]'
    )


# ---------------------------------------------------------------------------
# Reply parsing
# ---------------------------------------------------------------------------

def extract_json_array(text: str) -> List[Any]:
    """
    Stage 1: locate the payload (fenced ```json block first, else the outermost
    [...] span). Stage 2: json.loads it and require a list.

    A reply with no array in it at all means "no scores" and yields [].
    """
    if not isinstance(text, str):
        raise ScorerError(f"scorer content is {type(text).__name__}, expected text")

    m = _FENCED_JSON_RX.search(text)
    if m:
        payload = m.group(1)
    else:
        m = _BARE_ARRAY_RX.search(text)
        if not m:
            return []
        payload = m.group(0)

    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise ScorerError(f"scorer reply is not valid JSON: {e}") from e

    if not isinstance(data, list):
        raise ScorerError(f"scorer reply is a JSON {type(data).__name__}, expected an array")
    return data


def parse_score_entries(text: str) -> List[ScoreEntry]:
    entries: List[ScoreEntry] = []
    for raw in extract_json_array(text):
        if not isinstance(raw, dict) or raw.get("id") is None:
            continue
        try:
            entries.append(ScoreEntry.model_validate(raw))
        except ValidationError as e:
            logger.debug("Skipping unusable score entry {!r}: {}", raw, e)
    return entries


def parse_scores(text: str) -> Dict[str, float]:
    """
    id -> score lookup. When the scorer repeats an id the last entry wins.
    """
    scores: Dict[str, float] = {}
    for entry in parse_score_entries(text):
        scores[entry.id] = entry.score
    return scores


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------

class LLMScorer:
    """
    Chat-completions client (OpenAI-compatible request/response shape).
    """

    def __init__(self, settings: Settings, http: httpx.AsyncClient):
        self.settings = settings
        self._http = http

    def _payload(self, prompt: str) -> Dict[str, Any]:
        return {
            "model": self.settings.scorer_model,
            "messages": [
                {"role": "system", "content": SCORER_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        }

    async def complete(self, prompt: str) -> str:
        """Send the prompt and return the assistant message text."""
        headers = {
            "Authorization": f"Bearer {self.settings.scorer_api_key}",
            "Content-Type": "application/json",
            "User-Agent": HTTP_USER_AGENT,
        }
        timeout = httpx.Timeout(self.settings.scorer_timeout, connect=HTTP_CONNECT_TIMEOUT)
        try:
            r = await self._http.post(
                self.settings.scorer_url,
                json=self._payload(prompt),
                headers=headers,
                timeout=timeout,
            )
        except httpx.HTTPError as e:
            raise ScorerError(f"scorer request failed: {e!r}") from e

        if r.status_code < 200 or r.status_code >= 300:
            logger.error("Scorer API error: HTTP {} {}", r.status_code, r.text[:500])
            raise ScorerError(f"scorer returned HTTP {r.status_code}")

        try:
            data = r.json()
        except ValueError as e:
            raise ScorerError("scorer response body is not JSON") from e

        return _message_content(data)

    async def score(self, liked: Sequence[CandidateItem], pool: Sequence[CandidateItem]) -> Dict[str, float]:
        reply = await self.complete(build_prompt(liked, pool))
        return parse_scores(reply)


def _message_content(data: Any) -> str:
    content: Optional[Any] = None
    if isinstance(data, dict):
        choices = data.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            message = choices[0].get("message")
            if isinstance(message, dict):
                content = message.get("content")
    return content if content else "[]"
