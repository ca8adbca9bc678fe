"""Parse repeated `--header Name=Value` options."""

from __future__ import annotations


def parse_headers(values: list[str] | None) -> dict[str, str]:
    headers: dict[str, str] = {}
    for raw in values or []:
        name, sep, value = raw.partition("=")
        if not sep:
            name, sep, value = raw.partition(":")
        name = name.strip()
        if not sep or not name:
            raise ValueError(f"invalid header {raw!r}; use Name=Value")
        headers[name.lower()] = value.strip()
    return headers
