"""HTTP transport for the ledger API; every failure is classified once, here"""

import logging
import time
import uuid
from typing import Any, Dict, Optional

import httpx

from ledger_sync.config import settings
from ledger_sync.domain.exceptions import (
    AbsenceError,
    ApiFailure,
    AuthorizationError,
    InvalidResponseError,
    TransientServiceError,
    ValidationFailure,
)
from ledger_sync.infrastructure.observability.metrics import api_request_histogram

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> str:
    """Server message from {error: {message}}, {message} or FastAPI's {detail}"""
    try:
        data = response.json()
    except ValueError:
        return response.reason_phrase or f"HTTP {response.status_code}"

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        for field in ("message", "detail"):
            if data.get(field):
                return str(data[field])
    return response.reason_phrase or f"HTTP {response.status_code}"


def classify_failure(response: httpx.Response) -> ApiFailure:
    """
    Map an error response onto the closed failure union.

    - 404 → AbsenceError (no record; callers of per-customer resources resolve to None)
    - 401/403 → AuthorizationError
    - 5xx and 429 → TransientServiceError
    - other 4xx → ValidationFailure with the server-provided message
    """
    status = response.status_code
    message = _error_message(response)

    if status == 404:
        return AbsenceError(message, status)
    if status in (401, 403):
        return AuthorizationError(message, status)
    if status >= 500 or status == 429:
        return TransientServiceError(f"Ledger service temporarily unavailable: {message}", status)
    return ValidationFailure(message, status)


def unwrap(response: httpx.Response) -> Any:
    """Parse JSON body, unwrapping the {success, data} envelope when present"""
    if not response.content:
        return None
    try:
        body = response.json()
    except ValueError as e:
        raise InvalidResponseError(f"Ledger API returned non-JSON body: {e}") from e

    if isinstance(body, dict) and "success" in body and "data" in body:
        return body["data"]
    return body


class ApiTransport:
    """Thin async wrapper over httpx with failure classification and request tracing"""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        headers: Optional[Dict[str, str]] = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.timeout = timeout or settings.http_timeout_seconds
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={"Content-Type": "application/json", **(headers or {})},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Send one request and return the unwrapped JSON payload.

        Raises:
            ApiFailure subclass for any error response, timeout or transport failure
            InvalidResponseError: Body is not JSON
        """
        request_id = str(uuid.uuid4())
        start_time = time.time()
        status = "error"

        try:
            response = await self._client.request(
                method,
                path,
                params=params,
                json=json,
                headers={"X-Request-ID": request_id},
            )
            status = str(response.status_code)
        except httpx.TimeoutException as e:
            raise TransientServiceError(f"Ledger API timeout after {self.timeout}s") from e
        except httpx.RequestError as e:
            raise TransientServiceError(f"Ledger API unreachable: {e}") from e
        finally:
            api_request_histogram.labels(method=method, status=status).observe(time.time() - start_time)

        if response.is_error:
            failure = classify_failure(response)
            logger.info(
                "Ledger request failed",
                extra={
                    "request_id": request_id,
                    "path": path,
                    "status_code": response.status_code,
                    "failure_kind": failure.kind.value,
                },
            )
            raise failure

        return unwrap(response)

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("POST", path, json=json)

    async def ping(self) -> bool:
        """Health probe used for connectivity checks"""
        try:
            await self.get("/health")
            return True
        except (ApiFailure, InvalidResponseError):
            return False
