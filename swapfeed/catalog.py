from __future__ import annotations

"""
Read-only access to the hosted platform: the auth server (who is calling)
and the REST catalog (items and the caller's interest history).

Every request is sent with the project's anon key plus the caller's own
bearer token so the platform's row-level security applies exactly as it
would for the client app.
"""

from typing import Any, Dict, List, Optional

import httpx
from loguru import logger
from pydantic import ValidationError

from .config import (
    HTTP_CONNECT_TIMEOUT,
    HTTP_READ_TIMEOUT,
    HTTP_USER_AGENT,
    AuthUser,
    CandidateItem,
    PreferenceSignal,
    Settings,
)
from .errors import AuthError, CatalogError

HISTORY_ITEM_COLUMNS = "id,title,category,description,price,estimated_value"


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """
    Pull the token out of an `Authorization: Bearer <token>` header value.
    """
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def default_timeout() -> httpx.Timeout:
    return httpx.Timeout(HTTP_READ_TIMEOUT, connect=HTTP_CONNECT_TIMEOUT)


class CatalogClient:
    """
    Thin async client over the platform's auth and REST endpoints for one
    caller token.
    """

    def __init__(self, settings: Settings, token: str, http: httpx.AsyncClient):
        self.settings = settings
        self.token = token
        self._http = http

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self.settings.supabase_anon_key,
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/json",
            "User-Agent": HTTP_USER_AGENT,
        }

    # -----------------------
    # Auth
    # -----------------------

    async def get_user(self) -> AuthUser:
        if not self.token:
            raise AuthError("missing bearer token")
        try:
            r = await self._http.get(f"{self.settings.auth_url}/user", headers=self._headers())
        except httpx.HTTPError as e:
            logger.warning("Auth lookup failed: {}", e)
            raise AuthError(str(e)) from e

        if r.status_code >= 400:
            logger.info("Auth server rejected token: HTTP {}", r.status_code)
            raise AuthError(f"auth server returned HTTP {r.status_code}")

        try:
            return AuthUser.model_validate(r.json())
        except (ValueError, ValidationError) as e:
            raise AuthError("auth server returned no user") from e

    # -----------------------
    # REST reads
    # -----------------------

    async def _select(self, table: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        url = f"{self.settings.rest_url}/{table}"
        try:
            r = await self._http.get(url, params=params, headers=self._headers())
        except httpx.HTTPError as e:
            raise CatalogError(f"{table} read failed: {e}") from e

        if r.status_code >= 400:
            try:
                payload = r.json()
            except ValueError:
                payload = {}
            if not isinstance(payload, dict):
                payload = {}
            raise CatalogError(
                str(payload.get("message") or f"{table} read returned HTTP {r.status_code}"),
                code=payload.get("code"),
                status_code=r.status_code,
            )

        try:
            rows = r.json()
        except ValueError as e:
            raise CatalogError(f"{table} read returned invalid JSON") from e
        if not isinstance(rows, list):
            raise CatalogError(f"{table} read returned {type(rows).__name__}, expected a list")
        return rows

    async def fetch_candidates(self, user_id: str, limit: Optional[int] = None) -> List[CandidateItem]:
        """
        Active listings not owned by `user_id`, newest first.
        """
        limit = limit or self.settings.candidate_limit
        rows = await self._select(
            "items",
            {
                "select": "*",
                "status": "eq.active",
                "user_id": f"neq.{user_id}",
                "order": "created_at.desc",
                "limit": str(limit),
            },
        )
        try:
            return [CandidateItem.model_validate(row) for row in rows]
        except ValidationError as e:
            raise CatalogError(f"items read returned malformed rows: {e}") from e

    async def fetch_history(self, user_id: str, limit: Optional[int] = None) -> List[PreferenceSignal]:
        """
        The caller's interest records joined to the liked item.
        """
        limit = limit or self.settings.history_limit
        rows = await self._select(
            "interests",
            {
                "select": f"item_id,items({HISTORY_ITEM_COLUMNS})",
                "user_id": f"eq.{user_id}",
                "limit": str(limit),
            },
        )
        try:
            return [PreferenceSignal.model_validate(row) for row in rows]
        except ValidationError as e:
            raise CatalogError(f"interests read returned malformed rows: {e}") from e
