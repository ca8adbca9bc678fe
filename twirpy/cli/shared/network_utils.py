"""Bind-address checks for `twirpy serve`."""

from __future__ import annotations

import errno
import socket


def format_address(host: str, port: int) -> str:
    """`host:port`, with IPv6 literals bracketed."""
    return f"[{host}]:{port}" if ":" in host else f"{host}:{port}"


def find_port_conflict(host: str, port: int) -> str | None:
    """
    Return the resolved `address:port` when something already holds it, else None.

    IPv4 and IPv6 hosts are both accepted; a host that does not resolve
    raises ValueError.
    """
    try:
        infos = socket.getaddrinfo(host or None, port, type=socket.SOCK_STREAM, flags=socket.AI_PASSIVE)
    except socket.gaierror as e:
        raise ValueError(f"cannot resolve bind host {host!r}: {e}") from e

    family, socktype, proto, _, sockaddr = infos[0]
    with socket.socket(family, socktype, proto) as sock:
        try:
            sock.bind(sockaddr)
        except OSError as e:
            if e.errno == errno.EADDRINUSE:
                return format_address(sockaddr[0], sockaddr[1])
            raise
    return None
