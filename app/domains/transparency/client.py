# app/domains/transparency/client.py
from typing import Dict, Optional

import httpx

from app.core.config import settings
from app.core.exceptions import PermanentExternalError, TransientExternalError
from app.shared.utils.logger import get_logger

logger = get_logger(__name__)


class TransparencyDbClient:
    """Submits redacted statements of reasons to the DSA Transparency Database."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url or settings.TRANSPARENCY_DB_URL
        self.api_key = api_key or settings.TRANSPARENCY_DB_API_KEY
        self.timeout = timeout or settings.TRANSPARENCY_DB_TIMEOUT_SECONDS
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    async def submit_statement(self, payload: Dict, idempotency_key: str) -> str:
        if not self.configured:
            raise TransientExternalError("Transparency DB endpoint is not configured")

        headers = {"Idempotency-Key": idempotency_key}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.post("/statement", json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise TransientExternalError(f"Transparency DB timeout: {e}")
        except httpx.TransportError as e:
            raise TransientExternalError(f"Transparency DB unreachable: {e}")

        if response.status_code >= 500 or response.status_code == 429:
            raise TransientExternalError(
                f"Transparency DB returned {response.status_code}", status_code=response.status_code
            )
        if response.status_code >= 400:
            raise PermanentExternalError(
                f"Transparency DB rejected statement: {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            raise PermanentExternalError(
                f"Transparency DB returned a non-JSON body: {response.text[:200]}",
                status_code=response.status_code,
            )
        if not isinstance(body, dict):
            raise PermanentExternalError(
                "Transparency DB response is not a JSON object", status_code=response.status_code
            )
        external_id = body.get("uuid") or body.get("id")
        if not external_id:
            raise PermanentExternalError("Transparency DB response carries no statement id")
        return str(external_id)


transparency_client = TransparencyDbClient()
