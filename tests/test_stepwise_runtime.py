import itertools

import pytest
from stepwise.stepwise_datatypes import CLOSE
from stepwise.stepwise_interpreter import R, W, P, O, G, g, S, C, A, a, EarlyStep
from stepwise.stepwise_runtime import (
    Process, process, APPEND, StepTemplate, template,
    ExecutionResult, ProcessRunner, max_output, DEFAULT_MAX_OUTPUT,
)


def inc(x):
    return x + 1

def dbl(x):
    return x * 2


# --- Process ---

def test_process_is_reusable():
    proc = Process([S, 'a', a, 0])
    s1, s2 = {}, {}
    assert proc.call_with(s1, 1) == 1
    assert proc.call_with(s2, 2) == 2
    assert s1 == {'a': 1}
    assert s2 == {'a': 2}

def test_call_returns_first_output_or_none():
    assert Process([R, 1, 2]).call() == 1
    assert Process([R]).call() is None
    assert Process([1, 2]).call() is None

def test_gen_is_lazy():
    calls = []
    def touch(scope, args):
        calls.append(1)
    outputs = Process([W, touch]).gen()
    assert calls == []
    assert list(outputs) == []
    assert calls == [1]

def test_mapping_source_uses_values_in_order():
    proc = Process({'first': R, 'second': 1, 'third': 2})
    assert proc.call() == 1
    assert list(proc.gen()) == [1, 2]

def test_fresh_scope_per_call():
    proc = Process([G])
    assert proc.call() == {}
    assert proc.call() is not proc.call()
    assert Process([G], list_scope=True).call() == []

def test_iterator_source_runs_once():
    proc = process(iter([R, 1]))
    assert list(proc.gen()) == [1]
    assert list(proc.gen()) == []

def test_process_repr():
    assert repr(Process([R, 1])) == "Process([R, 1])"


# --- StepTemplate ---

def test_template_builds_early_steps():
    t = StepTemplate([P, inc], {'value': 1, 'then': APPEND})
    step = t.run({'value': 4, 'then': dbl})
    assert isinstance(step, EarlyStep)
    assert step.tokens == [P, 4, inc, dbl]
    assert Process([step]).call() == 10

def test_template_leaves_its_tokens_untouched():
    t = template([P, inc], {'then': APPEND})
    t.run({'then': dbl})
    assert t.tokens == [P, inc]

def test_template_slots_sharing_an_index():
    t = StepTemplate([O], {'a': 1, 'b': 1})
    assert t.run({'a': 'A', 'b': 'B'}).tokens == [O, 'B', 'A']
    assert t.run([('b', 'B'), ('a', 'A')]).tokens == [O, 'A', 'B']

def test_template_unknown_slot():
    t = StepTemplate([O], {'a': 1})
    with pytest.raises(KeyError, match="Unknown template slot"):
        t.run({'z': 1})

def test_template_priority():
    t = StepTemplate([P, 1], {'f': APPEND})
    nested = t.run({'f': inc}, priority=1)
    assert nested.priority == 1
    assert list(Process([O, nested, CLOSE, 5]).gen()) == [[2, 5]]


# --- ProcessRunner ---

def test_runner_success():
    result = ProcessRunner().run(Process([G, 'a', S, 'a', 10]), scope={'a': 1})
    assert isinstance(result, ExecutionResult)
    assert result.status == 'success'
    assert result.values == [1, 10]
    assert result.value == 1
    assert result.scope == {'a': 10}
    assert result.format_error() == ""
    assert not result.truncated

def test_runner_passes_args_and_builds_scope():
    result = ProcessRunner().run(Process([A]), 1, 2)
    assert result.values == [1, 2]
    assert result.scope == {}
    result = ProcessRunner().run(Process([C, 'append', [5]], list_scope=True))
    assert result.scope == [5]

def test_runner_path_error_keeps_partial_output():
    result = ProcessRunner().run(Process([R, 1, g, 'missing', CLOSE, 3]))
    assert result.status == 'error'
    assert result.values == [1]
    assert result.frames == [R, g]
    message = result.format_error()
    assert message.splitlines() == ["PathNotFound: missing", "stepwise trace: (R) (g)"]

def test_runner_error_keeps_scope():
    result = ProcessRunner().run(Process([S, 'a', 1, G, 'missing']))
    assert result.status == 'error'
    assert result.values == [1]
    assert result.scope == {'a': 1}
    assert result.format_error().startswith("PathNotFound: missing")

def test_runner_type_error():
    result = ProcessRunner().run(Process([P, inc]), 'a')
    assert result.status == 'error'
    assert result.values == []
    assert result.format_error().startswith("TypeError:")
    assert "stepwise trace: (P)" in result.format_error()

def test_runner_other_errors_named_by_type():
    def boom(scope, args):
        raise RuntimeError("boom")
    result = ProcessRunner().run(Process([W, boom]))
    assert result.format_error().splitlines()[0] == "RuntimeError: boom"

def test_runner_errors_from_user_functions_keep_their_type():
    def lookup(scope, args):
        return {}['k']
    def first(scope, args):
        return [][0]
    message = ProcessRunner().run(Process([W, lookup])).format_error()
    assert message.splitlines()[0] == "KeyError: 'k'"
    message = ProcessRunner().run(Process([W, first])).format_error()
    assert message.splitlines()[0] == "IndexError: list index out of range"

def test_runner_path_errors_on_lists_and_objects():
    result = ProcessRunner().run(Process([G, 5]), scope=[1])
    assert result.format_error().startswith("PathNotFound: list index out of range")
    result = ProcessRunner().run(Process([C, 'nope']), scope=[])
    assert result.format_error().startswith("PathNotFound: 'list' object has no attribute 'nope'")

def test_runner_malformed_process_is_empty_success():
    result = ProcessRunner().run(Process([1, 2]))
    assert result.status == 'success'
    assert result.values == []

def test_runner_truncates_infinite_output():
    proc = Process([W, itertools.count()])
    result = ProcessRunner().run(proc, limit=3)
    assert result.status == 'success'
    assert result.values == [0, 1, 2]
    assert result.truncated
    proc = Process([W, itertools.count()])
    assert ProcessRunner(limit=2).run(proc).values == [0, 1]

def test_runner_output_exactly_at_the_cap_is_not_truncated():
    result = ProcessRunner(limit=3).run(Process([R, 1, 2, 3]))
    assert result.values == [1, 2, 3]
    assert not result.truncated
    result = ProcessRunner(limit=3).run(Process([R, 1, 2, 3, 4]))
    assert result.values == [1, 2, 3]
    assert result.truncated

def test_runner_zero_limit():
    result = ProcessRunner().run(Process([R, 1]), limit=0)
    assert result.values == []
    assert result.truncated
    assert not ProcessRunner().run(Process([R]), limit=0).truncated

def test_max_output_from_environment(monkeypatch):
    monkeypatch.delenv("STEPWISE_MAX_OUTPUT", raising=False)
    assert max_output() == DEFAULT_MAX_OUTPUT
    monkeypatch.setenv("STEPWISE_MAX_OUTPUT", "2")
    assert max_output() == 2
    result = ProcessRunner().run(Process([R, 1, 2, 3]))
    assert result.values == [1, 2]
    assert result.truncated
    monkeypatch.setenv("STEPWISE_MAX_OUTPUT", "lots")
    assert max_output() == DEFAULT_MAX_OUTPUT


# --- Debug output ---

def test_debug_output_goes_to_stderr(monkeypatch, capsys):
    monkeypatch.setenv("STEPWISE_DEBUG", "1")
    assert list(Process([R, 1]).gen()) == [1]
    err = capsys.readouterr().err
    assert "[DBG] start R" in err
    assert "[DBG] end R by DONE" in err

def test_debug_output_off_by_default(monkeypatch, capsys):
    monkeypatch.delenv("STEPWISE_DEBUG", raising=False)
    list(Process([R, 1]).gen())
    assert capsys.readouterr().err == ""
