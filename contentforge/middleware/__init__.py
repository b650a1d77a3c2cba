"""HTTP middleware and exception handlers."""

from .exception_handler import forge_exception_handler
from .request_context import RequestContextMiddleware

__all__ = ["forge_exception_handler", "RequestContextMiddleware"]
