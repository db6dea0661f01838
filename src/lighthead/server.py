"""FastAPI application factory for the Lighthead HTTP service.

Endpoints
---------
    GET /health   liveness probe, never gated
    GET /scrape   fetch a URL and return it as markup, text, Markdown or bytes

Every JSON body shares one envelope: ``success``, ``status`` and
``outputLength`` are always present; errors add ``error`` and nothing else.
When an API key is configured, /scrape requires it in the ``X-API-Key``
header or the ``apiKey`` query parameter.
"""

from __future__ import annotations

import base64
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from lighthead.config import Settings
from lighthead.errors import UnknownResultTypeError, ValidationError
from lighthead.fetcher import scrape_url
from lighthead.models import BinaryResult, HtmlResult, ScrapeOptions
from lighthead.validation import (
    SERVER_FORMATS,
    validate_boolean,
    validate_format,
    validate_max_redirects,
    validate_url,
)

logger = logging.getLogger(__name__)
access_logger = logging.getLogger("lighthead.access")

SERVICE_NAME = "lighthead-api"
SERVICE_VERSION = "1.0.0"


class ApiKeyError(Exception):
    """Raised by the API key gate; rendered as a 401 envelope."""


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "status": "error", "outputLength": 0, "error": message},
    )


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def select_output(result: HtmlResult, fmt: str) -> tuple[str, str]:
    """Return (output, canonical format name) for an HTML result."""
    if fmt == "html":
        return result.html, "html"
    if fmt in ("text", "txt"):
        return result.text, "text"
    return result.markdown, "markdown"


def binary_envelope(result: BinaryResult) -> Dict[str, Any]:
    return {
        "success": True,
        "status": "completed",
        "outputLength": len(result.buffer),
        "format": "binary",
        "contentType": result.content_type,
        "finalUrl": result.final_url,
        "redirectCount": len(result.redirect_chain),
        "data": {
            "type": "binary",
            "filename": result.filename,
            "contentType": result.content_type,
            "size": len(result.buffer),
            "url": result.url,
            "finalUrl": result.final_url,
            "redirectChain": [
                {"from": r.source, "to": r.target, "status": r.status} for r in result.redirect_chain
            ],
            "response": result.response.to_dict(),
            "buffer": base64.b64encode(result.buffer).decode("ascii"),
        },
    }


def create_app(settings: Optional[Settings] = None, browser=None) -> FastAPI:
    """
    Return a configured FastAPI application.

    Args:
        settings: Service settings. Read from the environment when omitted.
        browser: Browser capability handed to every fetch. Playwright when omitted.
    """
    settings = settings or Settings()

    app = FastAPI(
        title="Lighthead API",
        description="Fetch web pages through a headless browser and return HTML, text, Markdown or binary payloads.",
        version=SERVICE_VERSION,
    )
    app.state.settings = settings
    app.state.browser = browser

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def access_log(request: Request, call_next):
        start = time.monotonic()
        response = await call_next(request)
        duration_ms = int((time.monotonic() - start) * 1000)
        path = request.url.path
        if request.url.query:
            path += "?" + request.url.query
        client_ip = request.client.host if request.client else "-"
        timestamp = datetime.now(timezone.utc).strftime("%d/%b/%Y:%H:%M:%S %z")
        # Nginx combined format, followed by the request duration.
        access_logger.info(
            '%s - - [%s] "%s %s HTTP/%s" %d %s "%s" "%s" %dms',
            client_ip,
            timestamp,
            request.method,
            path,
            request.scope.get("http_version", "1.1"),
            response.status_code,
            response.headers.get("content-length", "0"),
            request.headers.get("referer", "-"),
            request.headers.get("user-agent", "-"),
            duration_ms,
        )
        return response

    @app.exception_handler(ApiKeyError)
    async def api_key_error_handler(request: Request, exc: ApiKeyError):
        return error_response(401, str(exc))

    def require_api_key(request: Request) -> None:
        if not settings.api_key:
            return
        provided = request.headers.get("x-api-key") or request.query_params.get("apiKey")
        if not provided or provided != settings.api_key:
            raise ApiKeyError("Invalid or missing API key")

    @app.get("/health")
    async def health():
        return {
            "success": True,
            "status": "healthy",
            "outputLength": 0,
            "data": {
                "service": SERVICE_NAME,
                "version": SERVICE_VERSION,
                "timestamp": _utc_timestamp(),
            },
        }

    @app.get("/scrape", dependencies=[Depends(require_api_key)])
    async def scrape(
        url: Optional[str] = Query(None),
        format: str = Query("markdown"),
        follow_redirects: str = Query("true", alias="followRedirects"),
        max_redirects: str = Query("10", alias="maxRedirects"),
        stealth: str = Query("true"),
    ):
        if not url:
            return error_response(400, "URL is required")
        try:
            validate_url(url)
            fmt = validate_format(format, SERVER_FORMATS)
            options = ScrapeOptions(
                verbose=settings.verbose,
                follow_redirects=validate_boolean(follow_redirects, "followRedirects"),
                cookie_file=None,
                max_redirects=validate_max_redirects(max_redirects, "maxRedirects"),
                stealth=validate_boolean(stealth, "stealth"),
            )
        except ValidationError as e:
            return error_response(400, str(e))

        try:
            result = await scrape_url(url, options, browser=app.state.browser)

            if isinstance(result, HtmlResult):
                output, output_format = select_output(result, fmt)
                return {
                    "success": True,
                    "status": "completed",
                    "outputLength": len(output),
                    "output": output,
                    "format": output_format,
                    "finalUrl": result.final_url,
                    "redirectCount": len(result.redirect_chain),
                }
            if isinstance(result, BinaryResult):
                if fmt == "binary":
                    return Response(
                        content=result.buffer,
                        media_type=result.content_type,
                        headers={"Content-Disposition": f'attachment; filename="{result.filename}"'},
                    )
                return binary_envelope(result)
            raise UnknownResultTypeError("Unknown result type")
        except Exception as e:
            logger.error(f"Scrape of {url} failed: {e}")
            logger.debug("Scrape failure details", exc_info=True)
            return error_response(500, str(e) or "Unknown error occurred")

    return app
