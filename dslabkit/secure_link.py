"""Length-prefixed messages authenticated with HMAC-SHA256, optionally over TLS."""

from __future__ import annotations

import hashlib
import hmac
import os
import socket
import ssl
import struct
import tempfile

TAG_SIZE = 32
_LENGTH = struct.Struct(">I")
_MAX_LENGTH = 0xFFFFFFFF


class InvalidHmacError(Exception):
    """The HMAC tag of a received message is invalid."""


def calculate_hmac_tag(hmac_key: bytes, message: bytes) -> bytes:
    """Return the 32-byte HMAC-SHA256 tag of ``message`` under ``hmac_key``."""
    return hmac.new(bytes(hmac_key), bytes(message), hashlib.sha256).digest()


def verify_hmac_tag(tag: bytes, hmac_key: bytes, message: bytes) -> bool:
    """Check in constant time whether ``tag`` authenticates ``message``."""
    return hmac.compare_digest(calculate_hmac_tag(hmac_key, message), bytes(tag))


def client_tls_socket(
    sock: socket.socket, root_cert: str, server_hostname: str
) -> ssl.SSLSocket:
    """Wrap a connected socket in TLS, trusting only the PEM ``root_cert``."""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.load_verify_locations(cadata=root_cert)
    return context.wrap_socket(sock, server_hostname=server_hostname)


def server_tls_socket(
    sock: socket.socket, private_key: str, full_chain: str
) -> ssl.SSLSocket:
    """Wrap an accepted socket in TLS using PEM ``private_key`` and ``full_chain``."""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    with tempfile.TemporaryDirectory() as directory:
        chain_path = os.path.join(directory, "chain.pem")
        key_path = os.path.join(directory, "key.pem")
        with open(chain_path, "w", encoding="ascii") as chain_file:
            chain_file.write(full_chain)
        with open(key_path, "w", encoding="ascii") as key_file:
            key_file.write(private_key)
        context.load_cert_chain(certfile=chain_path, keyfile=key_path)
    return context.wrap_socket(sock, server_side=True)


def _recv_exact(link, size: int) -> bytes:
    parts = []
    remaining = size
    while remaining:
        chunk = link.recv(min(remaining, 65536))
        if not chunk:
            raise ConnectionError("connection closed before a whole message arrived")
        parts.append(chunk)
        remaining -= len(chunk)
    return b"".join(parts)


class SecureClient:
    """Sends HMAC-tagged messages over ``link``, any object with ``sendall``."""

    def __init__(self, link, hmac_key: bytes) -> None:
        self.link = link
        self.hmac_key = bytes(hmac_key)

    def send_msg(self, data: bytes) -> None:
        """Send ``data`` as a 4-byte big-endian length, the data and its tag."""
        data = bytes(data)
        if len(data) > _MAX_LENGTH:
            raise ValueError("message is too long to be sent")
        tag = calculate_hmac_tag(self.hmac_key, data)
        self.link.sendall(_LENGTH.pack(len(data)) + data + tag)


class SecureServer:
    """Receives HMAC-tagged messages from ``link``, any object with ``recv``."""

    def __init__(self, link, hmac_key: bytes) -> None:
        self.link = link
        self.hmac_key = bytes(hmac_key)

    def recv_message(self) -> bytes:
        """Return the content of the next message.

        Raises InvalidHmacError when its tag does not match.
        """
        (length,) = _LENGTH.unpack(_recv_exact(self.link, _LENGTH.size))
        data = _recv_exact(self.link, length)
        tag = _recv_exact(self.link, TAG_SIZE)
        if not verify_hmac_tag(tag, self.hmac_key, data):
            raise InvalidHmacError("the HMAC tag of the message is invalid")
        return data