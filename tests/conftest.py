"""Pytest hooks and fixtures.

The Echo service used throughout is built at runtime from a descriptor, so
the suite needs no protoc step:

    package twirp.test;
    message Req  { string msg = 1; }
    message Resp { string msg = 1; }
    service Echo {
      rpc Echo(Req) returns (Resp);
      rpc SlowEcho(Req) returns (Resp);
    }
"""

import asyncio

import pytest
from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

from twirpy.errors import TwirpError
from twirpy.service import rpc, service


def _build_messages():
    file_proto = descriptor_pb2.FileDescriptorProto()
    file_proto.name = "twirp/test/echo.proto"
    file_proto.package = "twirp.test"
    file_proto.syntax = "proto3"
    for name in ("Req", "Resp"):
        message = file_proto.message_type.add()
        message.name = name
        field = message.field.add()
        field.name = "msg"
        field.json_name = "msg"
        field.number = 1
        field.type = descriptor_pb2.FieldDescriptorProto.TYPE_STRING
        field.label = descriptor_pb2.FieldDescriptorProto.LABEL_OPTIONAL

    pool = descriptor_pool.DescriptorPool()
    pool.AddSerializedFile(file_proto.SerializeToString())
    return (
        message_factory.GetMessageClass(pool.FindMessageTypeByName("twirp.test.Req")),
        message_factory.GetMessageClass(pool.FindMessageTypeByName("twirp.test.Resp")),
    )


Req, Resp = _build_messages()

ECHO_SERVICE = service(
    "twirp.test",
    "Echo",
    [
        rpc("Echo", Req, Resp, "echo"),
        rpc("SlowEcho", Req, Resp, "slow_echo"),
    ],
)

INTERNAL_DETAIL = "db password=hunter2 exploded"


class EchoHandler:
    """Echoes `msg`; a few magic values exercise the error paths."""

    def __init__(self):
        self.calls = 0
        self.started = asyncio.Event()
        self.finished = False
        self.seen_ctx = None

    async def echo(self, ctx, req):
        self.calls += 1
        self.seen_ctx = ctx
        if req.msg == "bad":
            return TwirpError.invalid_argument("bad size")
        if req.msg == "missing":
            raise TwirpError.not_found("no such thing", {"id": "42"})
        if req.msg == "crash":
            raise RuntimeError(INTERNAL_DETAIL)
        if req.msg == "wrong-type":
            return Req(msg="oops")
        return Resp(msg=req.msg)

    async def slow_echo(self, ctx, req):
        self.calls += 1
        self.started.set()
        await asyncio.sleep(30)
        self.finished = True
        return Resp(msg=req.msg)


@pytest.fixture
def echo_handler():
    return EchoHandler()
