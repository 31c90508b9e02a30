from __future__ import annotations

import math
import os
from functools import lru_cache
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------
# Feed size policy
# ---------------------------

CANDIDATE_LIMIT = 50      # active listings pulled per request, newest first
HISTORY_LIMIT = 20        # liked items used as preference context
RESULT_MAX = 20           # items returned to the client


# ---------------------------
# External scorer
# ---------------------------

SCORER_URL = "https://ai.gateway.lovable.dev/v1/chat/completions"
SCORER_MODEL = "google/gemini-2.5-flash"

SCORER_SYSTEM_PROMPT = (
    "You are a recommendation engine. Analyze user preferences and score items "
    "accordingly. Always respond with valid JSON only."
)


# ---------------------------
# HTTP hardening
# ---------------------------

HTTP_CONNECT_TIMEOUT = 3.0
HTTP_READ_TIMEOUT = 10.0
SCORER_TIMEOUT = 20.0     # wall clock for the whole scoring call

HTTP_USER_AGENT = "swapfeed/1.0"


# ---------------------------
# CORS (stamped on every response, errors included)
# ---------------------------

CORS_HEADERS: Dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}


# ---------------------------
# Runtime settings
# ---------------------------

def _env(*names: str, default: Optional[str] = None) -> Optional[str]:
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return default


class Settings(BaseModel):
    """
    Process-wide configuration, resolved once from the environment at startup
    and handed to the catalog client, scorer and ranker explicitly.
    """

    supabase_url: str = ""
    supabase_anon_key: str = ""
    scorer_api_key: str = ""
    scorer_url: str = SCORER_URL
    scorer_model: str = SCORER_MODEL
    scorer_timeout: float = Field(default=SCORER_TIMEOUT, gt=0)
    candidate_limit: int = Field(default=CANDIDATE_LIMIT, ge=1)
    history_limit: int = Field(default=HISTORY_LIMIT, ge=1)
    result_max: int = Field(default=RESULT_MAX, ge=1)

    @classmethod
    def from_env(cls) -> "Settings":
        raw: Dict[str, Any] = {
            "supabase_url": _env("SUPABASE_URL", default=""),
            "supabase_anon_key": _env("SUPABASE_ANON_KEY", default=""),
            # LOVABLE_API_KEY is the name the hosted functions runtime injects
            "scorer_api_key": _env("SCORER_API_KEY", "LOVABLE_API_KEY", default=""),
            "scorer_url": _env("SCORER_URL", default=SCORER_URL),
            "scorer_model": _env("SCORER_MODEL", default=SCORER_MODEL),
            "scorer_timeout": _env("SCORER_TIMEOUT", default=str(SCORER_TIMEOUT)),
            "candidate_limit": _env("CANDIDATE_LIMIT", default=str(CANDIDATE_LIMIT)),
            "history_limit": _env("HISTORY_LIMIT", default=str(HISTORY_LIMIT)),
            "result_max": _env("RESULT_MAX", default=str(RESULT_MAX)),
        }
        return cls(**raw)

    @property
    def rest_url(self) -> str:
        return self.supabase_url.rstrip("/") + "/rest/v1"

    @property
    def auth_url(self) -> str:
        return self.supabase_url.rstrip("/") + "/auth/v1"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


# ---------------------------
# Pydantic models shared around the app
# ---------------------------

class CandidateItem(BaseModel):
    """
    A listing as read from the catalog.

    Only the fields the ranker looks at are declared; every other column of
    the row (owner, status, images, created_at, ...) is kept as an extra field
    and serialised back unchanged.
    """

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    id: str
    title: str = ""
    category: str = ""
    description: Optional[str] = None
    price: Optional[Union[int, float]] = None
    estimated_value: Optional[Union[int, float]] = None


class PreferenceSignal(BaseModel):
    """
    One row of the caller's interest history joined to the liked item.
    The join comes back null when the item row is no longer readable.
    """

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    item_id: str
    items: Optional[CandidateItem] = None

    @property
    def liked_item(self) -> Optional[CandidateItem]:
        return self.items


class ScoreEntry(BaseModel):
    """
    One element of the scorer reply. Unknown keys are dropped and anything
    that is not a finite number scores 0.
    """

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: str
    score: float = 0.0
    reason: str = ""

    @field_validator("score", mode="before")
    @classmethod
    def _coerce_score(cls, value: Any) -> float:
        if isinstance(value, bool):
            return 0.0
        try:
            score = float(value)
        except (TypeError, ValueError):
            return 0.0
        return score if math.isfinite(score) else 0.0

    @field_validator("reason", mode="before")
    @classmethod
    def _coerce_reason(cls, value: Any) -> str:
        return "" if value is None else str(value)


class AuthUser(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: str
    email: Optional[str] = None


class ErrorResponse(BaseModel):
    """
    Body returned with 401 / 500.
    """

    error: str


class HealthResponse(BaseModel):
    """
    Response body for GET /health.
    """

    status: str


RankedResult = List[CandidateItem]
