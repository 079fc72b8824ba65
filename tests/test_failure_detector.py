import asyncio
import contextlib
import socket
import uuid

import pytest

from dslabkit.failure_detector import FailureDetector
from dslabkit.wire import AliveInfo, AliveRequest, decode, encode


def _free_address():
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()


class _Client(asyncio.DatagramProtocol):
    def __init__(self):
        self.received = asyncio.Queue()

    def datagram_received(self, data, addr):
        self.received.put_nowait(data)


@contextlib.asynccontextmanager
async def _client():
    loop = asyncio.get_running_loop()
    transport, protocol = await loop.create_datagram_endpoint(
        _Client, local_addr=("127.0.0.1", 0)
    )
    try:
        yield transport, protocol
    finally:
        transport.close()


async def _ask_alive(client, address, timeout=1.0):
    transport, protocol = client
    transport.sendto(encode(AliveRequest()), address)
    data = await asyncio.wait_for(protocol.received.get(), timeout)
    operation = decode(data)
    assert isinstance(operation, AliveInfo)
    return operation.alive


@contextlib.asynccontextmanager
async def _detectors(delta, addresses):
    detectors = [FailureDetector(delta, addresses, ident) for ident in addresses]
    try:
        for detector in detectors:
            await detector.start()
        yield detectors
    finally:
        for detector in detectors:
            await detector.close()


@pytest.mark.asyncio
async def test_data_on_wire_parses_for_single_node():
    ident = uuid.uuid4()
    address = _free_address()
    async with _client() as client, _detectors(0.02, {ident: address}):
        alive = await _ask_alive(client, address)
    assert len(alive) == 1
    assert next(iter(alive)) == ident


@pytest.mark.asyncio
async def test_single_node_keeps_reporting_itself_after_rounds():
    ident = uuid.uuid4()
    address = _free_address()
    async with _client() as client, _detectors(0.02, {ident: address}):
        await asyncio.sleep(0.1)
        alive = await _ask_alive(client, address)
    assert alive == {ident}


@pytest.mark.asyncio
async def test_should_send_multiple_alive_info():
    ident, ident2 = uuid.uuid4(), uuid.uuid4()
    addr, addr2 = _free_address(), _free_address()
    addresses = {ident: addr, ident2: addr2}
    async with _client() as client, _detectors(0.1, addresses) as (_, detector2):
        await asyncio.sleep(0.13)
        alive = await _ask_alive(client, addr)
        assert len(alive) == 2
        assert ident in alive and ident2 in alive

        detector2.disable()
        await asyncio.sleep(0.22)
        alive = await _ask_alive(client, addr)
        assert len(alive) == 1
        assert next(iter(alive)) == ident

        detector2.enable()
        await asyncio.sleep(0.2)
        alive = await _ask_alive(client, addr)
        assert len(alive) == 2
        assert ident in alive and ident2 in alive


@pytest.mark.asyncio
async def test_disabled_detector_does_not_answer():
    ident = uuid.uuid4()
    address = _free_address()
    async with _client() as client, _detectors(0.05, {ident: address}) as (detector,):
        detector.disable()
        with pytest.raises(asyncio.TimeoutError):
            await _ask_alive(client, address, timeout=0.2)


@pytest.mark.asyncio
async def test_malformed_datagram_is_ignored():
    ident = uuid.uuid4()
    address = _free_address()
    async with _client() as client, _detectors(0.05, {ident: address}):
        client[0].sendto(b"\xff\xff", address)
        alive = await _ask_alive(client, address)
    assert alive == {ident}


@pytest.mark.asyncio
async def test_period_grows_when_suspected_peer_comes_back():
    ident, ident2 = uuid.uuid4(), uuid.uuid4()
    addresses = {ident: _free_address(), ident2: _free_address()}
    async with _detectors(0.05, addresses) as (detector, detector2):
        detector2.disable()
        await asyncio.sleep(0.18)
        assert detector.delay == pytest.approx(0.05)
        detector2.enable()
        await asyncio.sleep(0.2)
        assert detector.delay > 0.05


def test_rejects_unknown_ident():
    with pytest.raises(KeyError):
        FailureDetector(0.05, {uuid.uuid4(): ("127.0.0.1", 1)}, uuid.uuid4())


def test_rejects_non_positive_delta():
    ident = uuid.uuid4()
    with pytest.raises(ValueError):
        FailureDetector(0, {ident: ("127.0.0.1", 1)}, ident)