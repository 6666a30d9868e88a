import pytest
from stepwise.stepwise_datatypes import CLOSE, close, fn, Environment
from stepwise.stepwise_paths import Field, Call, deep
from stepwise.stepwise_interpreter import R, P, G, g, F, f, E, e
from stepwise.stepwise_runtime import Process, StepTemplate, APPEND
from stepwise.stepwise_printer import Printer


def inc(x):
    return x + 1


FORMAT_CASES = [
    ("str", 'a', "'a'"),
    ("int", 1, "1"),
    ("none", None, "None"),
    ("bool", True, "True"),
    ("step_p0", R, "R"),
    ("step_p1", g, "g"),
    ("func_step", F(inc), "F(inc)"),
    ("func_step_nested", f(inc), "f(inc)"),
    ("early_step", E([P, inc]), "E([P, inc])"),
    ("early_step_nested", e([G, 'a']), "e([G, 'a'])"),
    ("closer", CLOSE, "$"),
    ("addressed_closer", close(G), "$(G)"),
    ("function_value", fn(len), "fn(len)"),
    ("callable", inc, "inc"),
    ("field_name", Field('a'), ".a"),
    ("field_index", Field(0), "[0]"),
    ("call", Call((1, 2)), "(1, 2)"),
    ("deep_key", deep.a[0](1), "deep.a[0](1)"),
    ("tuple_one", (1,), "(1,)"),
    ("nested_list", [1, [2, 'b']], "[1, [2, 'b']]"),
    ("dict", {'a': 1}, "{'a': 1}"),
    ("empty_dict", {}, "{}"),
    ("iterator", iter([1]), "<list_iterator>"),
    ("append", APPEND, "APPEND"),
]

@pytest.mark.parametrize("name, obj, expected", FORMAT_CASES, ids=[c[0] for c in FORMAT_CASES])
def test_pformat(name, obj, expected):
    assert Printer().pformat(obj) == expected


def test_process_single_statement_stays_on_one_line():
    assert Printer().pformat(Process([R, 1, g, 'a', CLOSE])) == "process [R 1 g 'a' $]"

def test_process_breaks_at_each_priority_zero_step():
    proc = Process([R, 1, g, 'a', CLOSE, P, inc])
    assert Printer().pformat(proc) == "process [\n  R 1 g 'a' $\n  P inc\n]"

def test_process_wider_indent():
    proc = Process([R, 1, P, inc])
    assert Printer(indent_width=4).pformat(proc) == "process [\n    R 1\n    P inc\n]"

def test_process_over_mapping_and_iterator():
    assert Printer().pformat(Process({'x': R, 'y': 1})) == "process [R 1]"
    assert Printer().pformat(Process(iter([R, 1]))) == "process <lazy>"

def test_template():
    t = StepTemplate([P], {'x': APPEND, 'y': 1})
    assert Printer().pformat(t) == "template [P] {x@APPEND, y@1}"

def test_environment():
    env = Environment(cursor=iter([]), scope={'a': 1}, args=(2,))
    assert Printer().pformat(env) == "<env scope={'a': 1} args=(2,)>"

def test_max_items_truncates_containers():
    printer = Printer(max_items=2)
    assert printer.pformat([1, 2, 3]) == "[1, 2, ...]"
    assert printer.pformat({'a': 1, 'b': 2, 'c': 3}) == "{'a': 1, 'b': 2, ...}"
    assert printer.pformat([1, 2]) == "[1, 2]"

def test_unknown_objects_fall_back_to_repr():
    class Thing:
        def __repr__(self):
            return "<thing>"
    assert Printer().pformat(Thing()) == "<thing>"
