"""Key-management calls against the routing proxy's admin API."""

from __future__ import annotations

import logging

import httpx

from llm_gateway.errors import UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0


class ProxyAdminClient:
    """Issues and deletes virtual keys through ``/key/generate`` and ``/key/delete``.

    Every request authenticates with the proxy master key. Non-2xx answers
    and transport failures raise ``UpstreamError``.
    """

    def __init__(
        self,
        base_url: str,
        master_key: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        headers = {"Content-Type": "application/json"}
        if master_key:
            headers["Authorization"] = f"Bearer {master_key}"
        self.client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"), headers=headers, timeout=timeout
        )

    async def _post(self, path: str, body: dict) -> dict:
        try:
            resp = await self.client.post(path, json=body)
        except httpx.HTTPError as e:
            raise UpstreamError(None, f"Proxy admin error: {path}: {e}") from e
        if resp.status_code >= 400:
            raise UpstreamError(
                None,
                f"Proxy admin error: {resp.status_code} - {resp.text[:200]}",
                status_code=resp.status_code,
            )
        return resp.json()

    async def generate_key(
        self,
        user_id: str,
        alias: str,
        *,
        duration: str | None = None,
        models: list[str] | None = None,
        max_budget: float | None = None,
        rpm_limit: int | None = None,
    ) -> str:
        """Create a virtual key owned by ``user_id`` and return its secret."""
        body: dict = {"user_id": user_id, "key_alias": alias}
        if duration:
            body["duration"] = duration
        if models:
            body["models"] = models
        if max_budget:
            body["max_budget"] = max_budget
        if rpm_limit:
            body["rpm_limit"] = rpm_limit

        data = await self._post("/key/generate", body)
        key = data.get("key")
        if not key:
            raise UpstreamError(None, "Proxy admin error: /key/generate returned no key")
        logger.debug("Proxy issued key alias=%s user=%s", alias, user_id)
        return key

    async def delete_key(self, key_hash: str) -> None:
        """Delete a key at the proxy. The proxy accepts the sha256 hash in place of the secret."""
        await self._post("/key/delete", {"keys": [key_hash]})

    async def close(self) -> None:
        await self.client.aclose()
