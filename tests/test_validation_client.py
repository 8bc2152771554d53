"""
Tests for the ELM validation client.

All validation service calls are served by httpx.MockTransport, so no
network access is needed and every failure mode is deterministic.
"""

from __future__ import annotations

import asyncio
import json
import socket
import time

import httpx
import pytest

from elm_cdr.core.exceptions import (
    ValidationServiceError,
    ValidatorConnectionRefusedError,
    ValidatorResponseError,
    ValidatorTimeoutError,
    ValidatorUnavailableError,
)
from elm_cdr.observability import get_registry
from elm_cdr.validation import VALIDATION_TIMEOUT_SECONDS, ValidatorClient


VALIDATOR_URL = "http://validator.test/validate"

SAMPLE_ELM = {"library": {"identifier": {"id": "Sepsis", "version": "0.3.1"}}}


def run_validate(handler, elm_json=SAMPLE_ELM, library_name="Sepsis"):
    """Run one validate() call against a mock transport."""
    client = ValidatorClient(VALIDATOR_URL, transport=httpx.MockTransport(handler))

    async def _call():
        try:
            return await client.validate(elm_json, library_name)
        finally:
            await client.aclose()

    return asyncio.run(_call())


class TestRequest:
    """What gets sent to the validation service."""

    def test_posts_json_body(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"valid": True})

        run_validate(handler)

        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == VALIDATOR_URL
        assert request.headers["content-type"] == "application/json"
        assert json.loads(request.content) == {"elm_json": SAMPLE_ELM, "library_name": "Sepsis"}

    def test_exactly_one_attempt_on_failure(self):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ValidatorTimeoutError):
            run_validate(handler)

        assert len(attempts) == 1

    def test_default_timeout_is_sixty_seconds(self):
        client = ValidatorClient(VALIDATOR_URL)

        assert client.timeout == VALIDATION_TIMEOUT_SECONDS == 60.0
        assert client._get_client().timeout == httpx.Timeout(60.0)

        asyncio.run(client.aclose())


class TestVerdicts:
    """Successful responses."""

    def test_valid_verdict(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"valid": True, "warnings": []})

        result = run_validate(handler)

        assert result.valid is True
        assert result.to_payload() == {"valid": True, "warnings": []}

    def test_invalid_verdict_keeps_extra_keys(self):
        body = {
            "valid": False,
            "errors": ["Could not resolve code system"],
            "warnings": [],
            "translator_version": "3.10.0",
        }

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=body)

        result = run_validate(handler)

        assert result.valid is False
        assert result.errors == ["Could not resolve code system"]
        assert result.to_payload() == body


    def test_verdict_payload_is_the_decoded_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b'{"valid": 1, "errors": null}')

        payload = run_validate(handler).to_payload()

        assert payload == {"valid": 1, "errors": None}
        assert type(payload["valid"]) is int


class TestFailureClassification:
    """Transport and response failures map to typed errors."""

    def test_read_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ValidatorTimeoutError) as exc_info:
            run_validate(handler)

        assert isinstance(exc_info.value, ValidatorUnavailableError)
        assert exc_info.value.message == "timeout of 60000ms exceeded"

    def test_connect_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("connect timed out", request=request)

        with pytest.raises(ValidatorTimeoutError):
            run_validate(handler)

    def test_connection_refused_from_cause(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("All connection attempts failed", request=request) from (
                ConnectionRefusedError(111, "Connection refused")
            )

        with pytest.raises(ValidatorConnectionRefusedError) as exc_info:
            run_validate(handler)

        assert isinstance(exc_info.value, ValidatorUnavailableError)
        assert exc_info.value.endpoint == VALIDATOR_URL

    def test_refusal_wording_alone_is_not_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("[Errno 111] Connection refused", request=request)

        with pytest.raises(ValidationServiceError) as exc_info:
            run_validate(handler)

        assert not isinstance(exc_info.value, ValidatorUnavailableError)

    def test_refused_by_closed_port(self):
        with socket.socket() as sock:
            sock.bind(("127.0.0.1", 0))
            port = sock.getsockname()[1]
        client = ValidatorClient(f"http://127.0.0.1:{port}/validate", timeout=5.0)

        async def _call():
            try:
                return await client.validate(SAMPLE_ELM, "Sepsis")
            finally:
                await client.aclose()

        with pytest.raises(ValidatorConnectionRefusedError):
            asyncio.run(_call())

    def test_dns_failure_is_not_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError(
                "[Errno -2] Name or service not known", request=request
            ) from socket.gaierror(-2, "Name or service not known")

        with pytest.raises(ValidationServiceError) as exc_info:
            run_validate(handler)

        assert not isinstance(exc_info.value, ValidatorUnavailableError)
        assert "Name or service not known" in exc_info.value.message

    def test_protocol_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.RemoteProtocolError("Server disconnected", request=request)

        with pytest.raises(ValidationServiceError) as exc_info:
            run_validate(handler)

        assert not isinstance(exc_info.value, ValidatorUnavailableError)

    @pytest.mark.parametrize("status_code", [400, 404, 422, 500, 502])
    def test_non_2xx_status(self, status_code):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status_code, text="nope")

        with pytest.raises(ValidatorResponseError) as exc_info:
            run_validate(handler)

        assert exc_info.value.status_code == status_code
        assert exc_info.value.body == "nope"
        assert exc_info.value.message == f"Request failed with status code {status_code}"

    def test_body_not_json(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>gateway</html>")

        with pytest.raises(ValidatorResponseError, match="malformed JSON"):
            run_validate(handler)

    def test_body_not_an_object(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=["valid"])

        with pytest.raises(ValidatorResponseError, match="non-object"):
            run_validate(handler)

    def test_body_missing_verdict(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"status": "ok"})

        with pytest.raises(ValidatorResponseError, match="unexpected verdict"):
            run_validate(handler)

    def test_invalid_url(self):
        client = ValidatorClient("not a url at all")

        async def _call():
            try:
                return await client.validate(SAMPLE_ELM, "Sepsis")
            finally:
                await client.aclose()

        with pytest.raises(ValidationServiceError):
            asyncio.run(_call())


class TestDeadline:
    """The timeout bounds the whole call, response body included."""

    def test_slow_handler_times_out(self):
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200, json={"valid": True})

        client = ValidatorClient(VALIDATOR_URL, timeout=0.2, transport=httpx.MockTransport(handler))

        async def _call():
            try:
                return await client.validate(SAMPLE_ELM, "Sepsis")
            finally:
                await client.aclose()

        started = time.monotonic()
        with pytest.raises(ValidatorTimeoutError) as exc_info:
            asyncio.run(_call())

        assert time.monotonic() - started < 2
        assert exc_info.value.message == "timeout of 200ms exceeded"

    def test_trickled_body_times_out(self):
        """A server that keeps sending bytes never trips httpx's read timeout."""
        body = json.dumps({"valid": True}).encode()

        async def trickle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
            await reader.readuntil(b"\r\n\r\n")
            writer.write(
                b"HTTP/1.1 200 OK\r\nContent-Type: application/json\r\n"
                b"Content-Length: " + str(len(body)).encode() + b"\r\n\r\n"
            )
            try:
                for byte in body:
                    writer.write(bytes([byte]))
                    await writer.drain()
                    await asyncio.sleep(0.25)
            except ConnectionError:
                pass
            finally:
                writer.close()

        async def _call():
            server = await asyncio.start_server(trickle, "127.0.0.1", 0)
            port = server.sockets[0].getsockname()[1]
            client = ValidatorClient(f"http://127.0.0.1:{port}/validate", timeout=1.0)
            try:
                started = time.monotonic()
                with pytest.raises(ValidatorTimeoutError):
                    await client.validate(SAMPLE_ELM, "Sepsis")
                return time.monotonic() - started
            finally:
                await client.aclose()
                server.close()

        elapsed = asyncio.run(_call())

        assert elapsed < 1.5


class TestMetrics:
    """Errors and latency are recorded."""

    def test_error_counter_by_type(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502)

        with pytest.raises(ValidatorResponseError):
            run_validate(handler)

        metrics = get_registry().get_all()
        assert metrics["cdr_validator_errors_total"] == {"type=http_status": 1.0}
        assert metrics["cdr_validator_latency_seconds"]["count"] == 1
