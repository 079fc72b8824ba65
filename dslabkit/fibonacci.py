"""Two modules computing Fibonacci numbers by exchanging messages through an executor."""

from __future__ import annotations

import queue
import random
import re
import sys
import threading
from dataclasses import dataclass
from typing import Union

U64_MAX = 2**64 - 1


@dataclass
class FibonacciModule:
    """A module holding one number of the sequence and the id of its peer."""

    num: int
    limit: int
    ident: int
    queue: queue.Queue
    other: int | None = None

    @classmethod
    def create(cls, initial_number: int, limit: int, queue: queue.Queue) -> int:
        """Create a module, register it through ``queue`` and return its id."""
        ident = random.getrandbits(128)
        module = cls(num=initial_number, limit=limit, ident=ident, queue=queue)
        queue.put(RegisterModule(module))
        return ident

    def message(self, idx: int, num: int) -> None:
        """Handle a step message: compute the next number and pass it on."""
        if idx >= self.limit:
            self.queue.put(Done())
            return
        if self.other is None:
            raise RuntimeError("module received a step message before initialisation")

        total = self.num + num
        if total > U64_MAX:
            print("Overflow detected!!!")
            print("Ending the execution...")
            self.queue.put(Done())
            return
        self.num = total

        print(f"Inside {self.ident}, value: {self.num}")
        self.queue.put(Message(ident=self.other, idx=idx + 1, num=self.num))

    def init(self, other: int) -> None:
        """Finish initialisation; the module holding 1 starts the calculation."""
        self.other = other
        if self.num == 1:
            self.queue.put(Message(ident=other, idx=1, num=self.num))


@dataclass(frozen=True)
class RegisterModule:
    """Register the module in the executor."""

    module: FibonacciModule


@dataclass(frozen=True)
class Init:
    """Finish initialisation of module ``ident``, pairing it with ``other``."""

    ident: int
    other: int


@dataclass(frozen=True)
class Message:
    """A calculation step for module ``ident``."""

    ident: int
    idx: int
    num: int


@dataclass(frozen=True)
class Done:
    """The calculation has ended."""


SystemMessage = Union[RegisterModule, Init, Message, Done]


def run_executor(queue: queue.Queue) -> threading.Thread:
    """Start a thread dispatching messages from ``queue`` until ``Done`` arrives."""
    modules: dict[int, FibonacciModule] = {}

    def loop() -> None:
        while True:
            match queue.get():
                case RegisterModule(module=module):
                    modules[module.ident] = module
                case Init(ident=ident, other=other):
                    target = modules.get(ident)
                    if target is None:
                        print("Module not registered")
                    else:
                        target.init(other)
                case Message(ident=ident, idx=idx, num=num):
                    target = modules.get(ident)
                    if target is None:
                        print("Module not registered")
                    else:
                        target.message(idx, num)
                case Done():
                    return

    thread = threading.Thread(target=loop, name="fibonacci-executor", daemon=True)
    thread.start()
    return thread


def fib(n: int) -> None:
    """Calculate the ``n``-th Fibonacci number, printing each step."""
    messages: queue.Queue = queue.Queue()
    first = FibonacciModule.create(0, n, messages)
    second = FibonacciModule.create(1, n, messages)
    if first == second:
        raise RuntimeError("two modules received the same identifier")

    messages.put(Init(ident=first, other=second))
    messages.put(Init(ident=second, other=first))

    run_executor(messages).join()


_UNSIGNED = re.compile(r"\+?[0-9]+")


def main(argv: list[str] | None = None) -> int:
    """Compute the Fibonacci number whose index is given on the command line."""
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        n = 94
    elif len(args) == 1:
        if not _UNSIGNED.fullmatch(args[0]):
            print("Provide an unsigned number as the program argument!")
            return 1
        n = int(args[0])
    else:
        print("Provide only one argument: an index of the Fibonacci number.")
        return 1
    fib(n)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())