"""Distributed-systems building blocks: a thread pool, message-passing modules, an
HMAC-authenticated link, crash-safe storage, a UDP failure detector and two-phase commit."""

__version__ = "0.2.0"