"""
GCS proxy handler.

Forwards GET and HEAD requests to a Cloud Storage bucket and streams the
stored object (status, headers and body) back to the caller.
"""
import asyncio
import logging
import time
from contextlib import AsyncExitStack
from typing import AsyncIterator, Optional, Sequence, Tuple

import httpx
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response, StreamingResponse
from starlette.types import Receive, Scope, Send

from gcs_proxy.core.config import ProxyConfig
from gcs_proxy.core.exceptions import (
    ProxyError,
    UpstreamExecutionError,
    UpstreamRequestError,
    UpstreamTimeoutError,
)
from gcs_proxy.core.response import StatusRecorder

UPSTREAM_HOST = "storage.googleapis.com"
ALLOWED_METHODS = ("GET", "HEAD")

# The upstream URL decides the host and no request body is ever sent
SKIPPED_REQUEST_HEADERS = {b"host", b"content-length"}
# Connection framing belongs to the serving ASGI server
SKIPPED_RESPONSE_HEADERS = {b"connection", b"keep-alive", b"transfer-encoding"}

RawHeaders = Sequence[Tuple[bytes, bytes]]


def request_uri(scope: Scope) -> str:
    """Return the request path and query string exactly as received."""
    raw_path = scope.get("raw_path")
    uri = raw_path.decode("latin-1") if raw_path else scope["path"]
    query_string = scope.get("query_string", b"")
    if query_string:
        uri += "?" + query_string.decode("latin-1")
    return uri


def build_upstream_url(config: ProxyConfig, uri: str) -> str:
    """Build the Cloud Storage URL for an inbound request URI."""
    host = UPSTREAM_HOST
    if not config.bucket_on_path:
        host = f"{config.bucket_name}.{host}"
    return f"https://{host}{uri}"


async def raw_body(upstream: httpx.Response) -> AsyncIterator[bytes]:
    """Yield the upstream body bytes as stored, without content decoding."""
    if upstream.is_stream_consumed:
        # Already read by the client or transport
        yield upstream.content
        return
    async for chunk in upstream.aiter_raw():
        yield chunk


def index_fallback_url(url: str, index_filename: str) -> Optional[str]:
    """
    Return the URL to retry with the index filename appended, or None when
    the fallback is disabled or the URL already targets the index file.
    """
    if not index_filename or url.endswith("/" + index_filename):
        return None
    if not url.endswith("/"):
        url += "/"
    return url + index_filename


class ProxyHandler:
    """ASGI application forwarding every request to the configured bucket."""

    def __init__(self, config: ProxyConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self.client = client
        self.logger = config.logger

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        start = time.perf_counter()
        request = Request(scope, receive)
        recorder = StatusRecorder(send)
        error: Optional[ProxyError] = None
        try:
            error = await self._handle(request, recorder)
        finally:
            self._log_request(request, recorder, start, error)

    async def _handle(self, request: Request, send: StatusRecorder) -> Optional[ProxyError]:
        if request.method not in ALLOWED_METHODS:
            response = PlainTextResponse("method not allowed", status_code=405)
            await response(request.scope, request.receive, send)
            return None

        if request.url.path == "/":
            await Response(status_code=200)(request.scope, request.receive, send)
            return None

        url = build_upstream_url(self.config, request_uri(request.scope))
        error: Optional[ProxyError] = None

        async with AsyncExitStack() as stack:
            stack.push_async_callback(request.close)
            try:
                async with asyncio.timeout(self.config.timeout):
                    headers = [
                        (name, value) for name, value in request.headers.raw
                        if name.lower() not in SKIPPED_REQUEST_HEADERS
                    ]
                    upstream = await self._fetch(request.method, url, headers, stack)

                    fallback = index_fallback_url(url, self.config.index_filename)
                    if fallback is not None and upstream.status_code == 404:
                        url = fallback
                        self.logger.debug("file not found; trying %s", url)
                        # Inbound headers are only sent with the primary request
                        upstream = await self._fetch(request.method, url, None, stack)

                    await self._passthrough(upstream, request, send)
            except TimeoutError:
                error = UpstreamTimeoutError(f'{request.method} "{url}": deadline exceeded', url)
            except ProxyError as e:
                error = e
            except (httpx.HTTPError, httpx.StreamError) as e:
                error = UpstreamExecutionError(f'{request.method} "{url}": {e}', url)

            if error is not None and not send.started:
                response = PlainTextResponse(error.message, status_code=500)
                await response(request.scope, request.receive, send)

        return error

    async def _fetch(
        self,
        method: str,
        url: str,
        headers: Optional[RawHeaders],
        stack: AsyncExitStack
    ) -> httpx.Response:
        """Send one upstream request; the response is closed when ``stack`` exits."""
        if self.client is None:
            raise RuntimeError("Proxy handler has no HTTP client")

        try:
            outbound = self.client.build_request(method, url, headers=headers)
        except (httpx.InvalidURL, httpx.HTTPError, ValueError, TypeError) as e:
            raise UpstreamRequestError(f'{method} "{url}": {e}', url) from e

        try:
            upstream = await self.client.send(outbound, stream=True)
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError(f'{method} "{url}": {e}', url) from e
        except httpx.HTTPError as e:
            raise UpstreamExecutionError(f'{method} "{url}": {e}', url) from e

        stack.push_async_callback(upstream.aclose)
        return upstream

    async def _passthrough(self, upstream: httpx.Response, request: Request, send: Send) -> None:
        """Copy status, headers and raw body bytes of ``upstream`` to the caller."""
        response = StreamingResponse(raw_body(upstream), status_code=upstream.status_code)
        response.raw_headers = [
            (name.lower(), value) for name, value in upstream.headers.raw
            if name.lower() not in SKIPPED_RESPONSE_HEADERS
        ]
        await response(request.scope, request.receive, send)

    def _log_request(
        self,
        request: Request,
        recorder: StatusRecorder,
        start: float,
        error: Optional[ProxyError]
    ) -> None:
        if error is None and not logging.getLogger(self.config.logger_name).isEnabledFor(logging.DEBUG):
            return

        fields = {
            "method": request.method,
            "elapsed_ms": round((time.perf_counter() - start) * 1000, 3),
            "path": request_uri(request.scope),
            "proxy_endpoint": self.config.endpoint,
            "response": recorder.status_code,
        }
        for header in self.config.log_headers:
            value = request.headers.get(header)
            if value:
                fields[f"req_header/{header}"] = value

        log = self.logger.bind(**fields)
        if error is not None:
            log.error("failed to handle request", **error.to_dict())
        else:
            log.debug("finished handling request")
