"""HTTP-based NullifierRegistry client.

Talks to a RegistryHTTPServer. Maps ``409`` to DuplicateNullifier and
connection errors, timeouts, other error statuses and undecodable bodies
to TransportFailure (``400`` is MalformedInput). Retrying is
left to the caller's RetryPolicy; this client makes one request per call.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import bittensor as bt
import httpx
from pydantic import ValidationError

from marsguard.attestation.models import Attestation, AttestationReceipt
from marsguard.errors import DuplicateNullifier, MalformedInput, TransportFailure


class HTTPNullifierRegistry:
    """Remote registry client."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            resp = await self._client.request(method, f"{self.base_url}{path}", **kwargs)
        except httpx.TransportError as e:
            bt.logging.warning({"registry_http_client": {"path": path, "error": str(e)}})
            raise TransportFailure(f"registry unreachable: {e}") from e

        if resp.status_code >= 500:
            raise TransportFailure(f"registry error: {resp.status_code} {resp.text}")
        return resp

    @staticmethod
    def _json(resp: httpx.Response) -> dict[str, Any]:
        """Decode a successful response body.

        400 means the registry rejected our request body (MalformedInput);
        any other non-2xx status or an undecodable body is a TransportFailure.
        """
        if resp.status_code == 400:
            raise MalformedInput(f"registry rejected request: {resp.text}")
        try:
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            raise TransportFailure(f"registry error: {resp.status_code}") from e
        except ValueError as e:
            raise TransportFailure("registry returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise TransportFailure("registry returned an unexpected payload")
        return data

    async def has_attested(self, nullifier: str) -> bool:
        resp = await self._request("GET", f"/attestations/{quote(nullifier, safe='')}")
        return bool(self._json(resp).get("attested", False))

    async def accept(self, attestation: Attestation) -> AttestationReceipt:
        resp = await self._request(
            "POST", "/attestations", json=attestation.model_dump(mode="json"),
        )
        if resp.status_code == 409:
            raise DuplicateNullifier(attestation.nullifier)
        data = self._json(resp)
        try:
            return AttestationReceipt(**data)
        except ValidationError as e:
            raise TransportFailure("registry returned a malformed receipt") from e

    async def get_attestation(self, nullifier: str) -> Attestation | None:
        resp = await self._request(
            "GET", f"/attestations/{quote(nullifier, safe='')}", params={"full": "1"},
        )
        data = self._json(resp)
        if not data.get("attested"):
            return None
        try:
            return Attestation(**data["attestation"])
        except (KeyError, TypeError, ValidationError) as e:
            raise TransportFailure("registry returned a malformed attestation") from e

    async def list_attestations(
        self, operator_id: str | None = None,
    ) -> list[Attestation]:
        params = {"operator_id": operator_id} if operator_id else None
        resp = await self._request("GET", "/attestations", params=params)
        data = self._json(resp)
        try:
            return [Attestation(**a) for a in data.get("attestations", [])]
        except (TypeError, ValidationError) as e:
            raise TransportFailure("registry returned a malformed attestation list") from e


__all__ = ["HTTPNullifierRegistry"]
