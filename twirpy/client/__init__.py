"""Client side: stubs and HTTP transports."""

from twirpy.client.client import MethodStub, TwirpClient, error_from_response
from twirpy.client.transport import HttpxTransport, Transport, TransportResponse

__all__ = [
    "HttpxTransport",
    "MethodStub",
    "Transport",
    "TransportResponse",
    "TwirpClient",
    "error_from_response",
]
