"""
ELM CDR API Routes

FastAPI routes for retrieving a loaded ELM library, validated by the remote
ELM validation service when one is configured.

Every request ends in exactly one of these outcomes:

    not found              404  {success: false, error}
    validation disabled    200  {success: true, validated: false, elm_json, ..., warning}
    valid                  200  {success: true, validated: true, valid: true, elm_json, ...}
    invalid                400  {success: false, validated: true, valid: false, errors, warnings, ...}
    validator unreachable  200  same as "validation disabled", different warning
    other failure          500  {success: false, error}
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Protocol

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse

from elm_cdr import __version__
from elm_cdr.config import Settings, get_settings
from elm_cdr.core.enums import RetrievalOutcome, SkipReason
from elm_cdr.core.exceptions import (
    ValidationServiceError,
    ValidatorUnavailableError,
)
from elm_cdr.core.schemas import (
    EnvelopeModel,
    ErrorResponse,
    InvalidLibraryResponse,
    LibraryRecord,
    SkippedValidationResponse,
    ValidationResult,
    ValidLibraryResponse,
)
from elm_cdr.observability import (
    SpanKind,
    get_registry,
    get_retrieval_metrics,
    get_tracer,
    setup_logging,
)
from elm_cdr.storage import InMemoryLibraryStore, LibraryStore
from elm_cdr.validation import ValidatorClient


logger = logging.getLogger(__name__)
tracer = get_tracer("elm_cdr.api")


class Validator(Protocol):
    """What the endpoint needs from a validation service client."""

    endpoint: str

    async def validate(
        self, elm_json: dict[str, Any], library_name: str | None
    ) -> ValidationResult: ...


# =============================================================================
# DEPENDENCIES
# =============================================================================


def get_library_store(request: Request) -> LibraryStore:
    """Library store owned by the application."""
    return request.app.state.library_store


def get_validator(request: Request) -> Validator | None:
    """Validator client, or None when validation is not configured."""
    return request.app.state.validator


# =============================================================================
# ROUTERS
# =============================================================================

router = APIRouter(tags=["cdr"])
health_router = APIRouter(tags=["health"])


_RESPONSES: dict[int | str, dict[str, Any]] = {
    status.HTTP_200_OK: {
        "model": ValidLibraryResponse,
        "description": "Library returned (validated, or validation skipped with a warning)",
    },
    status.HTTP_400_BAD_REQUEST: {
        "model": InvalidLibraryResponse,
        "description": "Validation service rejected the library",
    },
    status.HTTP_404_NOT_FOUND: {"model": ErrorResponse, "description": "Library not found"},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {
        "model": ErrorResponse,
        "description": "Validation call failed",
    },
}


@router.post("/{library_id}", responses=_RESPONSES)
async def get_cdr_latest(
    library_id: str,
    store: LibraryStore = Depends(get_library_store),
    validator: Validator | None = Depends(get_validator),
) -> JSONResponse:
    """Retrieve the latest version of a library."""
    return await retrieve_library(library_id, None, store, validator)


@router.post("/{library_id}/version/{version}", responses=_RESPONSES)
async def get_cdr_version(
    library_id: str,
    version: str,
    store: LibraryStore = Depends(get_library_store),
    validator: Validator | None = Depends(get_validator),
) -> JSONResponse:
    """Retrieve a specific version of a library."""
    return await retrieve_library(library_id, version, store, validator)


@health_router.get("/health")
async def health_check(request: Request) -> dict:
    """Health check endpoint.

    Returns:
        Health status, version info and whether validation is enabled
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "elm-cdr",
        "validation_enabled": request.app.state.validator is not None,
    }


@health_router.get("/metrics")
async def get_metrics() -> dict:
    """Get current metrics.

    Returns:
        Dictionary of metric values
    """
    return get_registry().get_all()


# =============================================================================
# RETRIEVAL
# =============================================================================


async def retrieve_library(
    library_id: str,
    version: str | None,
    store: LibraryStore,
    validator: Validator | None,
) -> JSONResponse:
    """Resolve a library, validate it, and map the outcome to a response.

    Args:
        library_id: Store key of the library
        version: Specific version, or None for the latest
        store: Library store to resolve from
        validator: Validation client, or None to skip validation

    Returns:
        JSON response; never raises
    """
    log_extra = {"library_id": library_id, "library_version": version}
    logger.info("Request for %s %s", library_id, version or "(latest)", extra=log_extra)

    with tracer.span(
        "retrieve_library",
        kind=SpanKind.SERVER,
        attributes={"library_id": library_id, "version": version},
    ) as span:
        outcome, response = await _retrieve(library_id, version, store, validator)
        span.set_attribute("outcome", outcome.value)
        span.set_attribute("status_code", response.status_code)

    get_retrieval_metrics().requests.inc(labels={"outcome": outcome.value})
    return response


async def _retrieve(
    library_id: str,
    version: str | None,
    store: LibraryStore,
    validator: Validator | None,
) -> tuple[RetrievalOutcome, JSONResponse]:
    record = (
        store.resolve(library_id, version) if version else store.resolve_latest(library_id)
    )

    if record is None:
        logger.error(
            "Library not found: %s",
            library_id,
            extra={"library_id": library_id, "outcome": RetrievalOutcome.NOT_FOUND.value},
        )
        return RetrievalOutcome.NOT_FOUND, _respond(
            status.HTTP_404_NOT_FOUND,
            ErrorResponse(error=f"Library not found: {library_id} {version or '(latest)'}"),
        )

    library_name = record.library_name
    log_extra = {
        "library_id": library_id,
        "library_version": record.library_version,
        "library_name": library_name,
    }
    logger.info("Found library: %s", library_name, extra=log_extra)

    if validator is None:
        logger.warning("Validation endpoint not set, skipping validation", extra=log_extra)
        return RetrievalOutcome.SKIPPED_NOT_CONFIGURED, _skipped(
            record, library_id, SkipReason.NOT_CONFIGURED
        )

    try:
        logger.info("Validating with %s", validator.endpoint, extra=log_extra)
        result = await validator.validate(record.source, library_name)
    except ValidatorUnavailableError as e:
        logger.warning(
            "Validation service unavailable, returning ELM without validation: %s",
            e.message,
            extra={**log_extra, "error_type": type(e).__name__, "endpoint": e.endpoint},
        )
        return RetrievalOutcome.SKIPPED_UNAVAILABLE, _skipped(
            record, library_id, SkipReason.UNAVAILABLE
        )
    except ValidationServiceError as e:
        logger.error(
            "Error validating %s: %s",
            library_name,
            e.message,
            extra={**log_extra, "error_type": type(e).__name__, "endpoint": e.endpoint},
        )
        return RetrievalOutcome.ERROR, _respond(
            status.HTTP_500_INTERNAL_SERVER_ERROR, ErrorResponse(error=e.message)
        )
    except Exception as e:
        logger.error(
            "Error validating %s: %s",
            library_name,
            e,
            exc_info=True,
            extra={**log_extra, "error_type": type(e).__name__},
        )
        return RetrievalOutcome.ERROR, _respond(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            ErrorResponse(error=str(e) or type(e).__name__),
        )

    logger.info(
        "Validation result for %s: valid=%s", library_name, result.valid, extra=log_extra
    )

    if result.valid:
        return RetrievalOutcome.VALID, _respond(
            status.HTTP_200_OK,
            ValidLibraryResponse(
                elm_json=record.source,
                library_id=library_id,
                library_version=record.library_version,
                library_name=library_name,
                validation_result=result.to_payload(),
            ),
        )

    logger.error("Validation failed for %s", library_name, extra=log_extra)
    return RetrievalOutcome.INVALID, _respond(
        status.HTTP_400_BAD_REQUEST,
        InvalidLibraryResponse(
            errors=result.errors,
            warnings=result.warnings,
            library_id=library_id,
            library_name=library_name,
        ),
    )


def _skipped(record: LibraryRecord, library_id: str, reason: SkipReason) -> JSONResponse:
    return _respond(
        status.HTTP_200_OK, SkippedValidationResponse.for_record(record, library_id, reason)
    )


def _respond(status_code: int, envelope: EnvelopeModel) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=envelope.to_body())


# =============================================================================
# APP FACTORY
# =============================================================================


def create_app(
    store: LibraryStore | None = None,
    validator: Validator | None = None,
    settings: Settings | None = None,
    prefix: str = "",
):
    """Create FastAPI application.

    Args:
        store: Library store to serve from (default: empty in-memory store)
        validator: Validation client; built from settings when omitted and a
            validation URL is configured
        settings: Settings (default: global settings)
        prefix: Path prefix for the retrieval routes

    Returns:
        Configured FastAPI app
    """
    from fastapi.middleware.cors import CORSMiddleware

    settings = settings or get_settings()
    owns_validator = False
    if validator is None and settings.validation.enabled:
        validator = ValidatorClient(settings.validation.modal_validation_url)
        owns_validator = True

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup/shutdown lifecycle."""
        setup_logging(settings.observability.log_level, settings.observability.log_format)
        settings.ensure_directories()
        logger.info(
            "ELM CDR API started",
            extra={"endpoint": validator.endpoint if validator else None},
        )
        yield
        if owns_validator and isinstance(validator, ValidatorClient):
            await validator.aclose()
        logger.info("ELM CDR API shutting down")

    app = FastAPI(
        title="ELM CDR API",
        description="Retrieval of loaded ELM libraries with remote validation",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.state.library_store = store if store is not None else InMemoryLibraryStore()
    app.state.validator = validator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Health routes first so GET /health is never captured by /{library_id}
    app.include_router(health_router)
    app.include_router(router, prefix=prefix)

    return app


# Create app instance for uvicorn/gunicorn
app = create_app()


# For direct execution
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
