"""
Upstream failure types for the GCS proxy.

Every failure raised while talking to the bucket is caught by the proxy
handler and turned into a plain-text 500 response whose body is the
exception message.
"""

from typing import Any, Dict, Optional


class ProxyError(Exception):
    """Base exception for proxy errors."""

    def __init__(self, message: str, error_code: Optional[str] = None, url: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or "proxy_error"
        self.url = url

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to log record fields."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "error": self.message,
            "url": self.url,
        }


class UpstreamRequestError(ProxyError):
    """Raised when the outbound request cannot be built."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message, "upstream_request_error", url)


class UpstreamExecutionError(ProxyError):
    """Raised when the outbound request fails in flight."""

    def __init__(self, message: str, url: Optional[str] = None, error_code: Optional[str] = None):
        super().__init__(message, error_code or "upstream_execution_error", url)


class UpstreamTimeoutError(UpstreamExecutionError):
    """Raised when the per-request deadline expires."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message, url, "upstream_timeout")
