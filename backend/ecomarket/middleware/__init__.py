"""
HTTP middleware.
"""
from ecomarket.middleware.request_id import RequestIdMiddleware

__all__ = ["RequestIdMiddleware"]
