import queue

from dslabkit.fibonacci import (
    Done,
    FibonacciModule,
    Init,
    Message,
    RegisterModule,
    fib,
    main,
    run_executor,
)


def _printed_values(text):
    return [
        int(line.rsplit("value: ", 1)[1])
        for line in text.splitlines()
        if line.startswith("Inside ")
    ]


def _printed_idents(text):
    return {
        line[len("Inside "):].split(",", 1)[0]
        for line in text.splitlines()
        if line.startswith("Inside ")
    }


def test_fib_ends(capsys):
    fib(10)
    out = capsys.readouterr().out
    assert _printed_values(out) == [1, 2, 3, 5, 8, 13, 21, 34, 55]


def test_fib_alternates_between_two_modules(capsys):
    fib(10)
    out = capsys.readouterr().out
    assert len(_printed_idents(out)) == 2


def test_fib_detects_overflow(capsys):
    fib(94)
    out = capsys.readouterr().out
    values = _printed_values(out)
    assert values[-1] == 12200160415121876738
    assert "Overflow detected!!!" in out
    assert "Ending the execution..." in out


def test_fib_zero_prints_nothing(capsys):
    fib(0)
    assert _printed_values(capsys.readouterr().out) == []


def test_create_registers_new_module():
    messages = queue.Queue()
    ident = FibonacciModule.create(0, 7, messages)

    assert messages.qsize() == 1
    registered = messages.get_nowait()
    assert isinstance(registered, RegisterModule)
    assert registered.module.ident == ident
    assert registered.module.limit == 7
    assert registered.module.num == 0


def test_init_of_module_holding_one_starts_calculation():
    messages = queue.Queue()
    FibonacciModule.create(1, 5, messages)
    module = messages.get_nowait().module
    module.init(42)
    assert messages.get_nowait() == Message(ident=42, idx=1, num=1)


def test_init_of_module_holding_zero_sends_nothing():
    messages = queue.Queue()
    FibonacciModule.create(0, 5, messages)
    module = messages.get_nowait().module
    module.init(42)
    assert messages.empty()


def test_message_updates_number_and_forwards(capsys):
    messages = queue.Queue()
    FibonacciModule.create(3, 10, messages)
    module = messages.get_nowait().module
    module.init(7)
    module.message(4, 5)
    assert module.num == 8
    assert messages.get_nowait() == Message(ident=7, idx=5, num=8)
    assert f"Inside {module.ident}, value: 8" in capsys.readouterr().out


def test_message_at_limit_finishes():
    messages = queue.Queue()
    FibonacciModule.create(3, 4, messages)
    module = messages.get_nowait().module
    module.init(7)
    module.message(4, 5)
    assert module.num == 3
    assert messages.get_nowait() == Done()


def test_executor_reports_unknown_module(capsys):
    messages = queue.Queue()
    messages.put(Init(ident=1, other=2))
    messages.put(Done())
    run_executor(messages).join(timeout=2)
    assert "Module not registered" in capsys.readouterr().out


def test_main_rejects_non_number(capsys):
    assert main(["abc"]) == 1
    assert "unsigned number" in capsys.readouterr().out


def test_main_rejects_negative_number(capsys):
    assert main(["-3"]) == 1
    assert "unsigned number" in capsys.readouterr().out


def test_main_rejects_extra_arguments(capsys):
    assert main(["1", "2"]) == 1
    assert "only one argument" in capsys.readouterr().out


def test_main_computes_requested_number(capsys):
    assert main(["10"]) == 0
    assert _printed_values(capsys.readouterr().out)[-1] == 55