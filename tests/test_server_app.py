from fastapi import FastAPI
from fastapi.testclient import TestClient

from conftest import ECHO_SERVICE, INTERNAL_DETAIL, EchoHandler, Req, Resp
from twirpy.codec import Format, encode
from twirpy.server.app import create_app, mount_twirp
from twirpy.server.dispatcher import Dispatcher

ECHO_URL = "/twirp/twirp.test.Echo/Echo"


def _client(handler: EchoHandler) -> TestClient:
    return TestClient(create_app(Dispatcher.for_service(ECHO_SERVICE, handler)))


def test_unregistered_path_returns_bad_route(echo_handler: EchoHandler) -> None:
    resp = _client(echo_handler).post("/foo.Bar/Baz", json={})
    assert resp.status_code == 404
    assert resp.headers["content-type"] == "application/json"
    assert resp.json()["code"] == "bad_route"


def test_text_plain_is_rejected_without_calling_handler(echo_handler: EchoHandler) -> None:
    resp = _client(echo_handler).post(ECHO_URL, content=b"hi", headers={"Content-Type": "text/plain"})
    assert resp.status_code == 404
    assert resp.json()["code"] == "bad_route"
    assert echo_handler.calls == 0


def test_binary_echo(echo_handler: EchoHandler) -> None:
    body = encode(Req(msg="ping"), Format.BINARY)
    resp = _client(echo_handler).post(ECHO_URL, content=body, headers={"Content-Type": "application/protobuf"})
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/protobuf"
    assert Resp.FromString(resp.content).msg == "ping"


def test_json_echo(echo_handler: EchoHandler) -> None:
    resp = _client(echo_handler).post(ECHO_URL, json={"msg": "ping"})
    assert resp.status_code == 200
    assert resp.json() == {"msg": "ping"}


def test_handler_error_is_json_even_for_binary_requests(echo_handler: EchoHandler) -> None:
    body = encode(Req(msg="bad"), Format.BINARY)
    resp = _client(echo_handler).post(ECHO_URL, content=body, headers={"Content-Type": "application/protobuf"})
    assert resp.status_code == 400
    assert resp.headers["content-type"] == "application/json"
    assert resp.json() == {"code": "invalid_argument", "msg": "bad size", "meta": {}}


def test_crash_does_not_leak_details(echo_handler: EchoHandler) -> None:
    resp = _client(echo_handler).post(ECHO_URL, json={"msg": "crash"})
    assert resp.status_code == 500
    assert resp.json()["code"] == "internal"
    assert INTERNAL_DETAIL not in resp.text


def test_get_is_bad_route(echo_handler: EchoHandler) -> None:
    resp = _client(echo_handler).get(ECHO_URL)
    assert resp.status_code == 404
    assert resp.json()["meta"]["twirp_invalid_route"] == f"GET {ECHO_URL}"


def test_mount_on_existing_app(echo_handler: EchoHandler) -> None:
    app = FastAPI()

    @app.get("/health")
    def health():
        return {"ok": True}

    mount_twirp(app, Dispatcher.for_service(ECHO_SERVICE, echo_handler))
    client = TestClient(app)
    assert client.get("/health").json() == {"ok": True}
    assert client.post(ECHO_URL, json={"msg": "hi"}).json() == {"msg": "hi"}
    assert client.post("/twirp/foo.Bar/Baz", json={}).json()["code"] == "bad_route"


def test_request_headers_reach_handler_context(echo_handler: EchoHandler) -> None:
    resp = _client(echo_handler).post(ECHO_URL, json={"msg": "hi"}, headers={"X-Request-Id": "req-7"})
    assert resp.status_code == 200
    ctx = echo_handler.seen_ctx
    assert ctx.header("x-request-id") == "req-7"
    assert ctx.header("content-type") == "application/json"
    assert (ctx.service_name, ctx.method_name) == ("Echo", "Echo")
