"""Protobuf message codec: binary and JSON encodings selected by content type."""

from __future__ import annotations

import json
from enum import Enum
from typing import TypeVar

from google.protobuf import json_format
from google.protobuf.message import DecodeError, Message

from twirpy.errors import TwirpError

M = TypeVar("M", bound=Message)


class Format(str, Enum):
    """Wire encodings understood by Twirp."""

    BINARY = "binary"
    JSON = "json"


CONTENT_TYPES: dict[str, Format] = {
    "application/protobuf": Format.BINARY,
    "application/json": Format.JSON,
}

_CONTENT_TYPE_BY_FORMAT: dict[Format, str] = {fmt: ct for ct, fmt in CONTENT_TYPES.items()}


def negotiate(content_type: str | None) -> Format | None:
    """Select the format for a Content-Type header value; None if unsupported."""
    if not content_type:
        return None
    media_type = content_type.split(";", 1)[0].strip().lower()
    return CONTENT_TYPES.get(media_type)


def content_type_for(fmt: Format) -> str:
    return _CONTENT_TYPE_BY_FORMAT[Format(fmt)]


def encode(message: Message, fmt: Format, *, use_proto_names: bool = True) -> bytes:
    """Encode a message. Well-typed messages always encode."""
    if Format(fmt) is Format.BINARY:
        return message.SerializeToString()
    payload = json_format.MessageToDict(message, preserving_proto_field_name=use_proto_names)
    return json.dumps(payload, ensure_ascii=False).encode("utf-8")


def decode(data: bytes, message_type: type[M], fmt: Format, *, strict: bool = False) -> M:
    """
    Decode bytes into an instance of message_type.

    Any failure is reported as a malformed TwirpError. With strict=True
    unknown JSON fields are rejected instead of ignored.
    """
    if Format(fmt) is Format.BINARY:
        try:
            return message_type.FromString(bytes(data))
        except (DecodeError, ValueError, TypeError) as exc:
            raise TwirpError.malformed(
                f"the protobuf message could not be decoded: {exc}",
            ) from exc

    try:
        text = bytes(data).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise TwirpError.malformed("the json message is not valid utf-8") from exc
    message = message_type()
    if not text.strip():
        return message
    try:
        json_format.Parse(text, message, ignore_unknown_fields=not strict)
    except (json_format.ParseError, ValueError, TypeError) as exc:
        raise TwirpError.malformed(f"the json message could not be decoded: {exc}") from exc
    return message
