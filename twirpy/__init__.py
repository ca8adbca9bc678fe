"""
twirpy - Twirp RPC for Python.
"""

__version__ = "0.1.0"

from twirpy.codec import Format
from twirpy.context import CancellationSignal, RequestContext
from twirpy.errors import ErrorCode, ServiceConfigError, TwirpError, http_status
from twirpy.hooks import ServerHooks
from twirpy.service import MethodDefinition, ServiceDefinition, ServiceRegistry, rpc, service

__all__ = [
    "__version__",
    "CancellationSignal",
    "ErrorCode",
    "Format",
    "MethodDefinition",
    "RequestContext",
    "ServerHooks",
    "ServiceConfigError",
    "ServiceDefinition",
    "ServiceRegistry",
    "TwirpError",
    "http_status",
    "rpc",
    "service",
]
