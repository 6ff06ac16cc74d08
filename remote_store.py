from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

import httpx

from db import DocumentStore, join_path, split_path, to_tree
from errors import FetchError

logger = logging.getLogger(__name__)


class RestDocumentStore(DocumentStore):
    """Document store backed by a Realtime Database REST endpoint.

    Reads are ``GET {base}/{path}.json``, pushes are ``POST`` (the server
    assigns the key) and patches are a single multi-location ``PATCH`` at the
    root, so the server applies them atomically. Listeners are notified of
    writes made through this client only.
    """

    def __init__(
        self,
        base_url: str,
        auth_token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ) -> None:
        super().__init__()
        self.base_url = base_url.rstrip("/")
        self.auth_token = auth_token
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def _url(self, key: str) -> str:
        return f"{self.base_url}/{key}.json" if key else f"{self.base_url}/.json"

    async def _request(self, method: str, key: str, body: Any = None) -> Any:
        params = {"auth": self.auth_token} if self.auth_token else None
        try:
            resp = await self._client.request(method, self._url(key), params=params, json=body)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("%s %s failed: %s", method, key or "/", e)
            raise FetchError(f"{method} {key or '/'} failed: {e}") from e
        try:
            return resp.json()
        except ValueError as e:
            logger.error("%s %s returned invalid JSON: %s", method, key or "/", e)
            raise FetchError(f"{method} {key or '/'} returned invalid JSON") from e

    async def _read(self, parts: Tuple[str, ...]) -> Any:
        return await self._request("GET", "/".join(parts))

    async def _apply(self, patch: Dict[Tuple[str, ...], Any]) -> None:
        body = {"/".join(parts): value for parts, value in patch.items()}
        await self._request("PATCH", "", body)

    async def push(self, path: str, value: Any) -> str:
        data = await self._request("POST", join_path(path), to_tree(value))
        key = data["name"]
        await self._notify([tuple(split_path(join_path(path, key)))])
        return key

    async def close(self) -> None:
        await super().close()
        await self._client.aclose()
