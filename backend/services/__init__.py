"""
Service integrations for the Interactive Avatar backend.
"""

from .rest_client import RestClient
from .streaming_api import StreamingApi

__all__ = [
    "RestClient",
    "StreamingApi",
]
