"""NeonVideo API backend"""

from .client import BackendNetworkError, BackendResponse, NeonVideoClient, build_headers

__all__ = ["BackendNetworkError", "BackendResponse", "NeonVideoClient", "build_headers"]
