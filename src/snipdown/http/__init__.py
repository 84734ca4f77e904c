"""HTTP client for snipdown."""

from .client import AsyncHttpClient, decode_data_uri
from .protocols import HttpClient, HttpResponse

__all__ = [
    "AsyncHttpClient",
    "HttpClient",
    "HttpResponse",
    "decode_data_uri",
]
