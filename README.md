# dslabkit

Small, self-contained building blocks for distributed systems, written
with the standard library alone.

## What is inside

| Module | What it gives you |
| --- | --- |
| `dslabkit.threadpool` | `ThreadPool`, a fixed set of worker threads that take submitted callables in order of submission. |
| `dslabkit.fibonacci` | Two `FibonacciModule` instances that exchange messages (`RegisterModule`, `Init`, `Message`, `Done`) through one queue and an executor thread (`run_executor`) until the n-th Fibonacci number is reached; `fib(n)` runs the whole system. |
| `dslabkit.secure_link` | `SecureClient` and `SecureServer`, which send and receive length-prefixed messages carrying an HMAC-SHA256 tag; `client_tls_socket` and `server_tls_socket` wrap sockets in TLS. `calculate_hmac_tag` and `verify_hmac_tag` are usable on their own. |
| `dslabkit.stable_storage` | `build_stable_storage(root_storage_dir)` returns a `StableStorage` whose `put`, `get` and `remove` survive a crash at any point. |
| `dslabkit.wire` | `encode` and `decode` for the failure detector's operations: `HeartbeatRequest`, `HeartbeatResponse`, `AliveRequest` and `AliveInfo`. |
| `dslabkit.failure_detector` | `FailureDetector`, an eventually perfect failure detector over UDP with a growing period. |
| `dslabkit.two_phase_commit` | `Node` and `DistributedStore`, which change product prices with two-phase commit. |

## Thread pool

```python
from dslabkit.threadpool import ThreadPool

results = []
with ThreadPool(4) as pool:
    for x in range(10):
        pool.submit(lambda x=x: results.append(x * x))
# leaving the block waits until every submitted task has run
print(sorted(results))
```

A pool needs at least one worker; asking for fewer raises `ValueError`.
`shutdown()` does the same as leaving the `with` block: queued tasks are
run, then the workers are joined. Submitting to a pool that is shut down
raises `RuntimeError`. An exception raised by a task is logged and does
not stop its worker.

## Fibonacci message passing

The package installs one command:

```
dslabkit-fib          # computes up to the 94th Fibonacci number
dslabkit-fib 10       # computes up to the 10th
```

Each step prints the module that handled it and the value it now holds,
for example `Inside 1096301592819..., value: 55`. The computation stops
early, with a notice, if the next number would not fit in 64 bits. An
argument that is not an unsigned number, or more than one argument,
prints a message and exits with status 1.

From Python, `fib(n)` runs the same computation and `main(argv)` takes
the argument list explicitly.

## Authenticated link

Each message is sent as a 4-byte big-endian length, the payload, and a
32-byte HMAC-SHA256 tag of the payload.

```python
from dslabkit.secure_link import SecureClient, SecureServer, InvalidHmacError

client = SecureClient(client_sock, b"shared")   # any object with sendall()
server = SecureServer(server_sock, b"shared")   # any object with recv()

client.send_msg(b"Hello World!")
print(server.recv_message())                    # b'Hello World!'
```

`recv_message` raises `InvalidHmacError` when the tag does not match and
`ConnectionError` when the connection closes in the middle of a message.
To run the link over TLS, wrap the sockets first:
`client_tls_socket(sock, root_cert, server_hostname)` trusts only the
given PEM root certificate, and
`server_tls_socket(sock, private_key, full_chain)` takes the server's
PEM key and certificate chain.

## Stable storage

```python
from dslabkit.stable_storage import build_stable_storage

storage = await build_stable_storage("/var/tmp/store")
await storage.put("key", b"value")
await storage.get("key")      # b'value'
await storage.remove("key")   # True
await storage.get("key")      # None
```

Keys are at most 255 bytes and values at most 65535 bytes; `put` raises
`ValueError` beyond that. Every write goes first to a checksummed
temporary file and is then appended to the data file, so a storage
rebuilt from the same directory after a crash returns exactly what was
last stored. A temporary file whose checksum does not match is
discarded on recovery.

## Failure detector

A `FailureDetector` is given its delta (seconds, or a `timedelta`), a
mapping from `uuid.UUID` identifiers to `(host, port)` UDP addresses,
and its own identifier. After `await detector.start()` it sends
heartbeats every period, answers an `AliveRequest` datagram with
`AliveInfo` holding the processes it heard from in the last completed
period, and lengthens its period by delta each time a suspected process
turns out to be alive. `disable()` and `enable()` simulate a crash and a
recovery; `await detector.close()` stops the rounds and releases the
socket.

## Two-phase commit

A `DistributedStore` coordinates a list of `Node`s, all inside one
running event loop. `await store.execute(transaction, callback)` starts
one `Transaction` (a `ProductType` and a price shift); the callback,
plain or a coroutine function, receives `TwoPhaseResult.OK` or
`TwoPhaseResult.ABORT` once every node has acknowledged. A transaction
that arrives while another is in progress is ignored. For a negative
shift, a node votes to abort if it would bring any product of that type
to zero or below. `await node.price_query(identifier)` returns a
product's current price, or `None` when the node does not hold it, and
raises `RuntimeError` once the node has been disabled with `disable()`.

## What it does not do

- No TLS certificates or keys are shipped; bring your own PEM data.
- The only command is `dslabkit-fib`. The storage, the failure detector
  and the two-phase commit are libraries with no command-line front end.
- Nodes and the store in `dslabkit.two_phase_commit` talk through the
  event loop of one process, not over the network.

## Running the tests

```
pip install -e ".[test]"
pytest
```