"""
Middleware package.
"""
from catalog_sync.middleware.error_handler import ErrorHandlerMiddleware
from catalog_sync.middleware.request_id import RequestContextMiddleware

__all__ = [
    "ErrorHandlerMiddleware",
    "RequestContextMiddleware",
]
