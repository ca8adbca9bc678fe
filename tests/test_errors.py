import json

import pytest

from twirpy.errors import ErrorCode, TwirpError, http_status

EXPECTED_STATUS = {
    "canceled": 408,
    "unknown": 500,
    "invalid_argument": 400,
    "malformed": 400,
    "deadline_exceeded": 408,
    "not_found": 404,
    "bad_route": 404,
    "already_exists": 409,
    "permission_denied": 403,
    "unauthenticated": 401,
    "resource_exhausted": 403,
    "failed_precondition": 412,
    "aborted": 409,
    "out_of_range": 400,
    "unimplemented": 501,
    "internal": 500,
    "unavailable": 503,
    "data_loss": 500,
}


def test_every_code_has_its_canonical_status() -> None:
    assert {code.value for code in ErrorCode} == set(EXPECTED_STATUS)
    for code, status in EXPECTED_STATUS.items():
        assert http_status(code) == status
        assert TwirpError.new(code, "x").status_code == status


def test_named_constructors_cover_every_code() -> None:
    for code in ErrorCode:
        err = getattr(TwirpError, code.value)("boom")
        assert err.code is code
        assert err.msg == "boom"


def test_unrecognized_code_parses_as_unknown() -> None:
    assert ErrorCode.parse("teapot") is ErrorCode.UNKNOWN
    err = TwirpError.from_json(b'{"code": "teapot", "msg": "short and stout"}')
    assert err.code is ErrorCode.UNKNOWN
    assert err.msg == "short and stout"
    assert err.status_code == 500


def test_to_json_wire_shape() -> None:
    err = TwirpError.invalid_argument("bad size")
    assert json.loads(err.to_json()) == {"code": "invalid_argument", "msg": "bad size", "meta": {}}


def test_meta_values_are_strings_and_read_only() -> None:
    err = TwirpError.internal("oops", {"status_code": 502, "retry": True})
    assert dict(err.meta) == {"status_code": "502", "retry": "True"}
    with pytest.raises(TypeError):
        err.meta["x"] = "y"  # type: ignore[index]


def test_with_meta_returns_new_error() -> None:
    err = TwirpError.not_found("gone", {"id": "1"})
    extended = err.with_meta(shard="eu")
    assert dict(err.meta) == {"id": "1"}
    assert dict(extended.meta) == {"id": "1", "shard": "eu"}
    assert extended.code is ErrorCode.NOT_FOUND


def test_from_dict_rejects_non_error_payloads() -> None:
    with pytest.raises(ValueError):
        TwirpError.from_dict({"msg": "no code"})
    with pytest.raises(ValueError):
        TwirpError.from_dict(["not", "an", "object"])
    with pytest.raises(ValueError):
        TwirpError.from_json(b"<html>bad gateway</html>")


def test_from_dict_tolerates_missing_msg_and_meta() -> None:
    err = TwirpError.from_dict({"code": "aborted"})
    assert err.code is ErrorCode.ABORTED
    assert err.msg == ""
    assert dict(err.meta) == {}


def test_errors_compare_by_value_and_are_raisable() -> None:
    a = TwirpError.unauthenticated("who are you", {"realm": "api"})
    b = TwirpError.from_json(a.to_json())
    assert a == b
    assert hash(a) == hash(b)
    assert str(a) == "[unauthenticated] who are you"
    with pytest.raises(TwirpError) as err:
        raise a
    assert err.value.code is ErrorCode.UNAUTHENTICATED
