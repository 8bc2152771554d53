"""
ELM Validation Client

Async client for the remote ELM validation service.

Contract:
- POST <endpoint> with JSON body {"elm_json": ..., "library_name": ...}
- Expects JSON body {"valid": bool, "errors"?: [...], "warnings"?: [...]}
- One attempt per call, no retries
- One deadline covers the whole call, response body included; httpx's
  per-phase timeouts restart on every chunk and do not bound the total

Failures are reported as typed exceptions from elm_cdr.core.exceptions:
- ValidatorTimeoutError: the call did not complete within the timeout
- ValidatorConnectionRefusedError: the service refused the TCP connection
- ValidatorResponseError: non-2xx status or a body that is not a verdict
- ValidationServiceError: any other transport failure (DNS, protocol, ...)
"""

import asyncio
import errno
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from elm_cdr.core.exceptions import (
    ValidationServiceError,
    ValidatorConnectionRefusedError,
    ValidatorResponseError,
    ValidatorTimeoutError,
)
from elm_cdr.core.schemas import ValidationRequest, ValidationResult
from elm_cdr.observability import SpanKind, get_retrieval_metrics, get_tracer


logger = logging.getLogger(__name__)

VALIDATION_TIMEOUT_SECONDS = 60.0


def _is_connection_refused(exc: BaseException) -> bool:
    """Walk the exception chain looking for a refused connection."""
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, ConnectionRefusedError):
            return True
        if isinstance(current, OSError) and current.errno == errno.ECONNREFUSED:
            return True
        current = current.__cause__ or current.__context__
    return False


class ValidatorClient:
    """
    Client for the ELM validation service.

    Usage:
        client = ValidatorClient("https://validator.example/validate")
        result = await client.validate(elm_json, "DiabetesScreening")
        await client.aclose()
    """

    def __init__(
        self,
        endpoint: str,
        timeout: float = VALIDATION_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize validator client.

        Args:
            endpoint: Full URL of the validation route.
            timeout: Deadline in seconds for the whole call, response body included.
            transport: Optional httpx transport (tests use httpx.MockTransport).
        """
        self.endpoint = endpoint
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._tracer = get_tracer("elm_cdr.validation")
        self._metrics = get_retrieval_metrics()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
                headers={"Content-Type": "application/json"},
            )
        return self._client

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def validate(self, elm_json: dict[str, Any], library_name: str | None) -> ValidationResult:
        """
        Validate an ELM document.

        Args:
            elm_json: ELM JSON document, sent as-is.
            library_name: Library name from the document identifier.

        Returns:
            The validator's verdict.

        Raises:
            ValidationServiceError: or one of its subclasses, see module docstring.
        """
        request = ValidationRequest(elm_json=elm_json, library_name=library_name)

        with self._tracer.span(
            "validate",
            kind=SpanKind.CLIENT,
            attributes={"endpoint": self.endpoint, "library_name": library_name},
        ) as span:
            try:
                with self._metrics.validator_latency.time():
                    response = await asyncio.wait_for(
                        self._get_client().post(
                            self.endpoint, json=request.model_dump(mode="json")
                        ),
                        timeout=self.timeout,
                    )
            except (httpx.TimeoutException, asyncio.TimeoutError) as e:
                self._record_error("timeout")
                raise ValidatorTimeoutError(self.endpoint, self.timeout) from e
            except httpx.ConnectError as e:
                if _is_connection_refused(e):
                    self._record_error("connection_refused")
                    raise ValidatorConnectionRefusedError(self.endpoint, str(e)) from e
                self._record_error("connect")
                raise ValidationServiceError(str(e) or type(e).__name__, self.endpoint) from e
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                self._record_error(type(e).__name__)
                raise ValidationServiceError(str(e) or type(e).__name__, self.endpoint) from e

            span.set_attribute("status_code", response.status_code)
            result = self._parse_response(response)
            span.set_attribute("valid", result.valid)
            return result

    def _parse_response(self, response: httpx.Response) -> ValidationResult:
        """Turn an HTTP response into a verdict or raise ValidatorResponseError."""
        if not response.is_success:
            self._record_error("http_status")
            raise ValidatorResponseError(
                f"Request failed with status code {response.status_code}",
                self.endpoint,
                status_code=response.status_code,
                body=response.text,
            )

        try:
            payload = response.json()
        except ValueError as e:
            self._record_error("malformed_body")
            raise ValidatorResponseError(
                f"Validation service returned malformed JSON: {e}",
                self.endpoint,
                status_code=response.status_code,
                body=response.text,
            ) from e

        if not isinstance(payload, dict):
            self._record_error("malformed_body")
            raise ValidatorResponseError(
                "Validation service returned a non-object JSON body",
                self.endpoint,
                status_code=response.status_code,
                body=response.text,
            )

        try:
            return ValidationResult.from_payload(payload)
        except ValidationError as e:
            self._record_error("malformed_body")
            raise ValidatorResponseError(
                f"Validation service returned an unexpected verdict: {e.error_count()} error(s)",
                self.endpoint,
                status_code=response.status_code,
                body=response.text,
            ) from e

    def _record_error(self, error_type: str) -> None:
        self._metrics.validator_errors.inc(labels={"type": error_type})
