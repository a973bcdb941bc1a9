"""
Portal search through a remote headless-browser service.

The service receives a typed JSON search request and runs the site
automation on its side; this adapter never builds script source text.
Every transport, HTTP or payload problem is reported as success=False.
"""

import time
from typing import Optional

import httpx
import structlog
from pydantic import ValidationError as PydanticValidationError

from landman.adapters.base import PortalSearchAdapter
from landman.observability.metrics import portal_search_duration_seconds
from landman.schemas.contracts import (
    PortalCredentials,
    PortalDocument,
    PortalSearchOutcome,
    SearchParams,
)

logger = structlog.get_logger(__name__)


class BrowserlessPortalAdapter(PortalSearchAdapter):
    """Posts a search request to the remote automation endpoint."""

    def __init__(
        self,
        endpoint: str,
        api_key: Optional[str] = None,
        timeout_seconds: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @property
    def adapter_name(self) -> str:
        return "browserless"

    def _request_body(self, credentials: PortalCredentials, params: SearchParams) -> dict:
        return {
            "portalUrl": params.portal_url,
            "credentials": {
                "username": credentials.username,
                "password": credentials.password.get_secret_value(),
            },
            "search": {
                "partyName": params.party_name,
                "partyRole": params.party_role.value,
                "dateFrom": params.date_from.isoformat() if params.date_from else None,
                "dateTo": params.date_to.isoformat() if params.date_to else None,
                "legalDescription": params.legal_description,
                "documentReference": params.document_reference,
            },
        }

    async def execute(
        self,
        credentials: PortalCredentials,
        params: SearchParams,
    ) -> PortalSearchOutcome:
        started = time.time()
        query = {"token": self.api_key} if self.api_key else None
        logger.info("portal_search_started", adapter=self.adapter_name, portal_url=params.portal_url)

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self._transport
            ) as client:
                response = await client.post(
                    f"{self.endpoint}/search",
                    params=query,
                    json=self._request_body(credentials, params),
                )
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as e:
            return self._failure(f"Portal service returned HTTP {e.response.status_code}", started)
        except httpx.HTTPError as e:
            return self._failure(f"Portal service unreachable: {e.__class__.__name__}: {e}", started)
        except ValueError:
            return self._failure("Portal service returned invalid JSON", started)
        finally:
            portal_search_duration_seconds.labels(adapter=self.adapter_name).observe(
                time.time() - started
            )

        if not isinstance(payload, dict):
            return self._failure("Portal service returned an unexpected payload", started)
        if payload.get("error"):
            return self._failure(str(payload["error"]), started)
        if payload.get("success") is False:
            return self._failure("Portal search reported failure", started)

        try:
            documents = [PortalDocument.model_validate(d) for d in payload.get("documents") or []]
        except PydanticValidationError as e:
            return self._failure(f"Malformed document rows: {e.error_count()} errors", started)

        logger.info(
            "portal_search_finished",
            adapter=self.adapter_name,
            documents=len(documents),
            duration_ms=int((time.time() - started) * 1000),
        )
        return PortalSearchOutcome(success=True, documents=documents)

    def _failure(self, error: str, started: float) -> PortalSearchOutcome:
        logger.warning(
            "portal_search_failed",
            adapter=self.adapter_name,
            error=error,
            duration_ms=int((time.time() - started) * 1000),
        )
        return PortalSearchOutcome(success=False, error=error)
