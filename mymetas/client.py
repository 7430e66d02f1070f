"""Async HTTP client for the MyMetas API.

This module provides the client used by the CLI:
- Connection pooling through a lazily created ``httpx.AsyncClient``
- Bearer authentication from ``MYMETAS_API_TOKEN`` or an explicit token
- One coroutine per endpoint, returning the API's Pydantic models
- A single error type, :class:`APIError`, for every failure

Requests are never retried: a failed write is reported and nothing is
re-sent.

Example:
    >>> from mymetas.client import AsyncMyMetasClient
    >>>
    >>> async with AsyncMyMetasClient(token=token) as client:
    ...     metas = await client.list_metas(search="run")
    ...     print(f"Fetched {len(metas)} metas")
"""

from datetime import date
from typing import Any, Optional

import httpx

from mymetas.config import settings
from mymetas.logging import logger
from mymetas.models import (
    MetaDetail,
    MetaRead,
    MetaStatus,
    SessionToken,
    StepRead,
    UserRead,
)

UNREACHABLE_MESSAGE = "Could not reach the server"


class APIError(Exception):
    """Request failed.

    Attributes:
        status: HTTP status code, 0 when the server could not be reached
        message: Server-provided error message or a generic fallback
        errors: Field errors for 422 responses
    """

    def __init__(self, status: int, message: str, errors: Optional[list[dict]] = None):
        super().__init__(f"{message} (HTTP {status})" if status else message)
        self.status = status
        self.message = message
        self.errors = errors or []

    @classmethod
    def from_response(cls, resp: httpx.Response) -> "APIError":
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        message = body.get("error") or f"Request failed with status {resp.status_code}"
        return cls(resp.status_code, message, body.get("errors"))


class AsyncMyMetasClient:
    """Async client for the MyMetas HTTP API.

    Args:
        base_url: API root (defaults to settings.api_url)
        token: Bearer token (defaults to settings.api_token)
        timeout: Custom httpx timeout configuration
        transport: Custom httpx transport (used by tests)

    Example:
        >>> async with AsyncMyMetasClient() as client:
        ...     meta = await client.create_meta("Run a marathon", date_target=date(2024, 10, 1))
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: httpx.Timeout | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = (base_url or settings.api_url).rstrip("/")
        self._token = token or settings.api_token
        self._timeout = timeout or httpx.Timeout(timeout=15.0, connect=5.0)
        self._transport = transport

        # Initialize HTTP client (created on first use)
        self._client: httpx.AsyncClient | None = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Lazy initialization of HTTP client."""
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self._token:
                headers["Authorization"] = f"Bearer {self._token}"
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers=headers,
                transport=self._transport,
            )
        return self._client

    async def __aenter__(self) -> "AsyncMyMetasClient":
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close all connections and cleanup resources."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def set_token(self, token: str) -> None:
        """Use ``token`` for subsequent requests."""
        self._token = token
        if self._client is not None:
            self._client.headers["Authorization"] = f"Bearer {token}"

    async def _request(
        self,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> Any:
        """Perform one HTTP request.

        Returns:
            Decoded JSON body, or None for 204 responses

        Raises:
            APIError: For transport failures and non-2xx responses
        """
        client = await self._ensure_client()
        try:
            resp = await client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning(f"{method} {path} failed: {exc}")
            raise APIError(0, UNREACHABLE_MESSAGE) from exc

        if resp.is_error:
            error = APIError.from_response(resp)
            logger.debug(f"{method} {path} -> {resp.status_code}: {error.message}")
            raise error

        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    # ----- accounts -----

    async def register(
        self,
        name: str,
        email: str,
        password: str,
        profile_photo_url: Optional[str] = None,
    ) -> UserRead:
        body: dict[str, Any] = {"name": name, "email": email, "password": password}
        if profile_photo_url:
            body["profile_photo_url"] = profile_photo_url
        return UserRead.model_validate(await self._request("POST", "/user", json=body))

    async def login(self, email: str, password: str) -> SessionToken:
        """Open a session and authenticate subsequent requests with it."""
        data = await self._request(
            "POST", "/session", json={"email": email, "password": password}
        )
        session = SessionToken.model_validate(data)
        self.set_token(session.token)
        return session

    async def me(self) -> UserRead:
        return UserRead.model_validate(await self._request("GET", "/user"))

    async def update_me(self, **changes: Any) -> UserRead:
        return UserRead.model_validate(await self._request("PUT", "/user", json=changes))

    async def delete_me(self) -> None:
        await self._request("DELETE", "/user")

    async def upload_avatar(self, png: bytes) -> UserRead:
        data = await self._request(
            "POST",
            "/user/avatar",
            content=png,
            headers={"Content-Type": "image/png"},
        )
        return UserRead.model_validate(data)

    # ----- metas -----

    async def list_metas(self, search: Optional[str] = None) -> list[MetaRead]:
        params = {"search": search} if search else None
        data = await self._request("GET", "/metas", params=params)
        return [MetaRead.model_validate(item) for item in data]

    async def get_meta(self, meta_id: int) -> MetaDetail:
        return MetaDetail.model_validate(await self._request("GET", f"/metas/{meta_id}"))

    async def create_meta(
        self,
        title: str,
        description: Optional[str] = None,
        date_target: Optional[date] = None,
        status: Optional[MetaStatus] = None,
    ) -> MetaRead:
        body: dict[str, Any] = {"title": title}
        if description is not None:
            body["description"] = description
        if date_target is not None:
            body["date_target"] = date_target.isoformat()
        if status is not None:
            body["status"] = str(status)
        return MetaRead.model_validate(await self._request("POST", "/metas", json=body))

    async def update_meta(self, meta_id: int, **changes: Any) -> MetaRead:
        """Send only the given fields; ``None`` clears nullable fields."""
        body = {
            key: value.isoformat() if isinstance(value, date) else value
            for key, value in changes.items()
        }
        data = await self._request("PUT", f"/metas/{meta_id}", json=body)
        return MetaRead.model_validate(data)

    async def complete_meta(self, meta_id: int) -> MetaRead:
        return await self.update_meta(meta_id, status=str(MetaStatus.COMPLETED))

    async def toggle_favorite(self, meta_id: int) -> MetaRead:
        data = await self._request("POST", f"/metas/{meta_id}/favorite")
        return MetaRead.model_validate(data)

    async def delete_meta(self, meta_id: int) -> None:
        await self._request("DELETE", f"/metas/{meta_id}")

    # ----- steps -----

    async def add_step(self, meta_id: int, description: str) -> StepRead:
        data = await self._request(
            "POST", f"/metas/{meta_id}/steps", json={"description": description}
        )
        return StepRead.model_validate(data)

    async def update_step(self, meta_id: int, step_id: int, **changes: Any) -> StepRead:
        data = await self._request(
            "PUT", f"/metas/{meta_id}/steps/{step_id}", json=changes
        )
        return StepRead.model_validate(data)

    async def delete_step(self, meta_id: int, step_id: int) -> None:
        await self._request("DELETE", f"/metas/{meta_id}/steps/{step_id}")


__all__ = ["APIError", "AsyncMyMetasClient", "UNREACHABLE_MESSAGE"]
