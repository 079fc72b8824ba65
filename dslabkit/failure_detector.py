"""An eventually perfect failure detector exchanging heartbeats over UDP."""

from __future__ import annotations

import asyncio
import datetime
import logging
import uuid
from typing import Mapping

from dslabkit.wire import (
    AliveInfo,
    AliveRequest,
    DecodeError,
    HeartbeatRequest,
    HeartbeatResponse,
    Operation,
    decode,
    encode,
)

_log = logging.getLogger(__name__)

Address = tuple[str, int]


def _normalise(address) -> Address:
    return str(address[0]), int(address[1])


class _Protocol(asyncio.DatagramProtocol):
    def __init__(self, detector: FailureDetector) -> None:
        self._detector = detector

    def datagram_received(self, data: bytes, addr) -> None:
        try:
            operation = decode(data)
        except DecodeError as err:
            _log.debug("Invalid format of detector operation (%s)!", err)
            return
        self._detector._handle(operation, _normalise(addr))

    def error_received(self, exc: Exception) -> None:
        _log.debug("UDP error: %s", exc)


class FailureDetector:
    """Periodically pings every peer and reports the ones that answered.

    Every ``delta`` seconds the detector sends a heartbeat request to all
    processes in ``addresses`` (itself included) and remembers who answered
    since the previous round. When a suspected process turns out to be alive,
    the period grows by ``delta``. An ``AliveRequest`` datagram is answered
    with the processes that answered in the last completed round.
    """

    def __init__(
        self,
        delta: float | datetime.timedelta,
        addresses: Mapping[uuid.UUID, Address],
        ident: uuid.UUID,
    ) -> None:
        if isinstance(delta, datetime.timedelta):
            delta = delta.total_seconds()
        if delta <= 0:
            raise ValueError("delta must be positive")
        if ident not in addresses:
            raise KeyError(f"no address given for {ident}")
        self.delta = float(delta)
        self.delay = float(delta)
        self.ident = ident
        self.peers = {peer: _normalise(addr) for peer, addr in addresses.items()}
        self.enabled = True
        self._alive: set[uuid.UUID] = set(self.peers)
        self._alive_checkpoint: frozenset[uuid.UUID] = frozenset(self.peers)
        self._suspected: set[uuid.UUID] = set()
        self._transport: asyncio.DatagramTransport | None = None
        self._local: Address | None = None
        self._ticker: asyncio.Task | None = None

    async def start(self) -> None:
        """Bind the socket and start the periodic heartbeat rounds."""
        if self._transport is not None:
            raise RuntimeError("the detector is already running")
        loop = asyncio.get_running_loop()
        transport, _ = await loop.create_datagram_endpoint(
            lambda: _Protocol(self), local_addr=self.peers[self.ident]
        )
        self._transport = transport
        self._local = _normalise(transport.get_extra_info("sockname"))
        self._ticker = asyncio.create_task(self._tick_forever())

    async def close(self) -> None:
        """Stop the heartbeat rounds and close the socket."""
        if self._ticker is not None:
            self._ticker.cancel()
            try:
                await self._ticker
            except asyncio.CancelledError:
                pass
            self._ticker = None
        if self._transport is not None:
            self._transport.close()
            self._transport = None

    def disable(self) -> None:
        """Make the detector ignore all messages and timeouts."""
        self.enabled = False

    def enable(self) -> None:
        """Make the detector process messages and timeouts again."""
        self.enabled = True

    async def _tick_forever(self) -> None:
        while True:
            await asyncio.sleep(self.delay)
            self._on_timeout()

    def _on_timeout(self) -> None:
        if not self.enabled:
            return
        if self._alive & self._suspected:
            self.delay += self.delta

        for peer, address in self.peers.items():
            if peer not in self._alive and peer not in self._suspected:
                self._suspected.add(peer)
            elif peer in self._alive and peer in self._suspected:
                self._suspected.discard(peer)

            if peer == self.ident:
                self._deliver_locally(HeartbeatRequest(), address)
            else:
                self._sendto(encode(HeartbeatRequest()), address)

        self._alive_checkpoint = frozenset(self._alive)
        self._alive.clear()

    def _handle(self, operation: Operation, sender: Address) -> None:
        if not self.enabled:
            return
        match operation:
            case HeartbeatRequest():
                self._send(sender, HeartbeatResponse(self.ident))
            case HeartbeatResponse(ident=ident):
                self._alive.add(ident)
            case AliveRequest():
                self._send(sender, AliveInfo(self._alive_checkpoint))
            case AliveInfo():
                pass

    def _send(self, destination: Address, operation: Operation) -> None:
        if destination == self._local:
            self._deliver_locally(operation, destination)
        else:
            self._sendto(encode(operation), destination)

    def _deliver_locally(self, operation: Operation, sender: Address) -> None:
        asyncio.get_running_loop().call_soon(self._handle, operation, sender)

    def _sendto(self, data: bytes, destination: Address) -> None:
        if self._transport is None:
            return
        try:
            self._transport.sendto(data, destination)
        except OSError as err:
            _log.debug("cannot send to %s: %s", destination, err)