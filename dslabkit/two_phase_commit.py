"""A product store whose price changes are agreed on with two-phase commit.

A ``DistributedStore`` acts as the transaction manager for a set of ``Node``
processes. Every node holds its own copy of the products. A transaction
shifts the price of every product of one type. Each node votes on it, and the
manager then tells all nodes to commit or to abort. Once every node has
acknowledged, the manager calls the completion callback.

Messages between the manager and the nodes are delivered through the running
event loop, one at a time and in the order they were sent, as if each
process had its own mailbox.
"""

from __future__ import annotations

import asyncio
import dataclasses
import enum
import inspect
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional, Union


class ProductType(enum.Enum):
    """The kinds of products the store holds."""

    ELECTRONICS = "electronics"
    TOYS = "toys"
    BOOKS = "books"


class TwoPhaseResult(enum.Enum):
    """The outcome of a vote or of a whole transaction."""

    OK = "ok"
    ABORT = "abort"


@dataclass(frozen=True)
class Product:
    """A product with its identifier, type and price."""

    identifier: uuid.UUID
    pr_type: ProductType
    price: int


@dataclass(frozen=True)
class Transaction:
    """Shift the price of every product of ``pr_type`` by ``shift``."""

    pr_type: ProductType
    shift: int


CompletedCallback = Callable[[TwoPhaseResult], Optional[Awaitable[object]]]


def _post(handler: Callable[..., None], *args: object) -> None:
    asyncio.get_running_loop().call_soon(handler, *args)


class _NodeStatus(enum.Enum):
    READY = enum.auto()
    BUSY = enum.auto()


class _StoreStatus(enum.Enum):
    READY = enum.auto()
    PENDING = enum.auto()
    COMMIT = enum.auto()


class Node:
    """A process of the distributed store holding its own copy of the products."""

    def __init__(self, products: Iterable[Product]) -> None:
        self._products = [dataclasses.replace(product) for product in products]
        self._pending: Transaction | None = None
        self._status = _NodeStatus.READY
        self.enabled = True

    @property
    def products(self) -> tuple[Product, ...]:
        """The products as this node currently sees them."""
        return tuple(self._products)

    async def price_query(self, product_ident: uuid.UUID) -> int | None:
        """Return the price of the product, or None when the node does not hold it.

        Raises RuntimeError when the node is disabled.
        """
        future: asyncio.Future[int | None] = asyncio.get_running_loop().create_future()
        _post(self._on_price_query, product_ident, future)
        return await future

    def disable(self) -> None:
        """Make the node ignore every message from now on."""
        self.enabled = False

    def _on_price_query(
        self, product_ident: uuid.UUID, future: asyncio.Future[int | None]
    ) -> None:
        if future.done():
            return
        if not self.enabled:
            future.set_exception(RuntimeError("the node is disabled"))
            return
        price = next(
            (p.price for p in self._products if p.identifier == product_ident), None
        )
        future.set_result(price)

    def _on_request_vote(self, store: DistributedStore, transaction: Transaction) -> None:
        if not self.enabled or self._status is not _NodeStatus.READY:
            return
        if transaction.shift < 0 and any(
            product.pr_type == transaction.pr_type and product.price <= -transaction.shift
            for product in self._products
        ):
            _post(store._on_vote, TwoPhaseResult.ABORT)
            return
        _post(store._on_vote, TwoPhaseResult.OK)
        self._pending = transaction
        self._status = _NodeStatus.BUSY

    def _on_commit(self, store: DistributedStore) -> None:
        if not self.enabled or self._status is not _NodeStatus.BUSY:
            return
        transaction = self._pending
        assert transaction is not None
        self._products = [
            dataclasses.replace(product, price=product.price + transaction.shift)
            if product.pr_type == transaction.pr_type
            else product
            for product in self._products
        ]
        _post(store._on_ack)
        self._pending = None
        self._status = _NodeStatus.READY

    def _on_abort(self, store: DistributedStore) -> None:
        if not self.enabled:
            return
        _post(store._on_ack)
        self._pending = None
        self._status = _NodeStatus.READY


class DistributedStore:
    """The transaction manager coordinating two-phase commit over ``nodes``.

    A transaction that arrives while another one is in progress is ignored.
    """

    def __init__(self, nodes: Iterable[Node]) -> None:
        self.nodes = list(nodes)
        self._status = _StoreStatus.READY
        self._callback: CompletedCallback | None = None
        self._replies = 0
        self._result: TwoPhaseResult | None = None
        self._callback_tasks: set[asyncio.Future[object]] = set()

    async def execute(
        self, transaction: Transaction, completed_callback: CompletedCallback
    ) -> None:
        """Start ``transaction``; ``completed_callback`` receives its outcome.

        The callback is called once every node has acknowledged the decision.
        It may be a plain function or a coroutine function.
        """
        _post(self._on_transaction, transaction, completed_callback)

    def _on_transaction(
        self, transaction: Transaction, completed_callback: CompletedCallback
    ) -> None:
        if self._status is not _StoreStatus.READY:
            return
        self._status = _StoreStatus.PENDING
        self._result = TwoPhaseResult.OK
        self._callback = completed_callback
        for node in self.nodes:
            _post(node._on_request_vote, self, transaction)

    def _on_vote(self, vote: TwoPhaseResult) -> None:
        if self._status is not _StoreStatus.PENDING:
            return
        if vote is TwoPhaseResult.ABORT:
            self._result = TwoPhaseResult.ABORT
        self._replies += 1
        if self._replies != len(self.nodes):
            return
        self._replies = 0
        self._status = _StoreStatus.COMMIT
        for node in self.nodes:
            if self._result is TwoPhaseResult.OK:
                _post(node._on_commit, self)
            else:
                _post(node._on_abort, self)

    def _on_ack(self) -> None:
        if self._status is not _StoreStatus.COMMIT:
            return
        self._replies += 1
        if self._replies != len(self.nodes):
            return
        callback, result = self._callback, self._result
        assert callback is not None and result is not None
        self._callback = None
        self._replies = 0
        self._status = _StoreStatus.READY
        self._result = None
        outcome = callback(result)
        if inspect.isawaitable(outcome):
            task: Union[asyncio.Future[object]] = asyncio.ensure_future(outcome)
            self._callback_tasks.add(task)
            task.add_done_callback(self._callback_tasks.discard)