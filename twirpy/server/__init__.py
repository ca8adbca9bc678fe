"""Server side: dispatcher and its FastAPI binding."""

from twirpy.server.app import create_app, mount_twirp
from twirpy.server.dispatcher import Dispatcher, TwirpRequest, TwirpResponse

__all__ = [
    "Dispatcher",
    "TwirpRequest",
    "TwirpResponse",
    "create_app",
    "mount_twirp",
]
