"""
The stepwise interpreter: the Step collection algorithm and the built-in steps.

A process is a flat sequence of tokens. Steps are the tokens that interpret
the tokens following them, up to the next priority-0 step, a Closer or the
end of the sequence. When a step meets another step while collecting:

1. a priority-0 step ends the current collection, and every enclosing one,
   and runs next;
2. a priority-1 step runs nested, right away, and whatever it yields is
   collected by the step that met it.

No tree is built: precedence is resolved entirely by how steps pull tokens
from the shared cursor and hand endings back to their parents.
"""
import collections.abc
import os
import sys
from itertools import chain
from typing import Any, Callable, Iterable, Optional, Tuple

from stepwise import stepwise_paths as paths
from stepwise.stepwise_datatypes import (
    TokenKind, Token, Closer, Environment, DONE, Terminated, kind_of
)


def _fmt(obj) -> str:
    from stepwise.stepwise_printer import Printer  # local import to avoid cycle
    return Printer().pformat(obj)


def _dbg(*parts):
    if os.environ.get("STEPWISE_DEBUG"):
        rendered = [part if isinstance(part, str) else _fmt(part) for part in parts]
        print("[DBG]", *rendered, file=sys.stderr)


class Collection(collections.abc.Iterator):
    """
    Lazy iterator over the values a step collects during one run.

    It wraps the step's collect generator and keeps that generator's return
    value (how the collection ended) in ``ending``, so termination travels
    with the run instead of being parked on the shared Step.
    """
    def __init__(self, step: 'Step', env: Environment):
        self._gen = step.collect(env)
        self.ending = None

    def __next__(self):
        if self.ending is not None:
            raise StopIteration
        try:
            value = next(self._gen)
        except StopIteration as stop:
            self.ending = stop.value if stop.value is not None else DONE
            raise StopIteration from None
        return value

    def drain(self) -> int:
        """Evaluates whatever the rewrite rule left unread. Returns how many values were dropped."""
        dropped = 0
        for _ in self:
            dropped += 1
        return dropped


# =================================================================
# Step
# =================================================================

class Step(Token):
    """Interprets the values following it and replaces them with new values.

    Subclasses implement their rule in :meth:`run_with`; :meth:`run` owns the
    collection and preemption protocol and should not normally be overridden.
    """
    kind = TokenKind.STEP

    def __init__(self, priority: int = 0, name: Optional[str] = None):
        self.priority = 1 if priority else 0
        self.name = name or type(self).__name__

    def __repr__(self) -> str:
        return self.name

    def run(self, env: Environment, parent: Optional['Step'] = None):
        """
        Runs this step over the tokens at ``env.cursor``.

        A generator: yields the replacement values. When running nested
        (``parent`` given) it returns the Terminated ending the parent has to
        resolve, or None. At top level a terminating priority-0 step is
        started in turn, in a loop, until the cursor runs dry or a stray
        Closer ends the run.
        """
        step = self
        while True:
            ending = yield from step.evaluate(env)
            if not isinstance(ending, Terminated):
                return None
            if parent is not None:
                return ending
            if ending.step is None:
                _dbg("run ended by", ending.token)
                return None
            step = ending.step

    def evaluate(self, env: Environment):
        """Collects, rewrites and drains once. Returns how the collection ended."""
        _dbg("start", self)
        env.frames.append(self)
        values = Collection(self, env)
        yield from self.run_with(env, values)
        dropped = values.drain()
        if dropped:
            _dbg(self, "drained", str(dropped), "unread values")
        env.frames.pop()
        _dbg("end", self, "by", repr(values.ending))
        return values.ending

    def collect(self, env: Environment):
        """Yields the values of this step's span. Returns DONE or a Terminated."""
        for token in env.cursor:
            ending = yield from self.take(token, env)
            if ending is not None:
                return ending
        return DONE

    def take(self, token: Any, env: Environment):
        """Handles a single token met while collecting."""
        match kind_of(token):
            case TokenKind.CLOSER:
                return self.end_by(token)
            case TokenKind.STEP if not token.priority:
                return self.end_by(token)
            case TokenKind.STEP:
                ending = yield from token.run(env, self)
                if ending is not None:
                    return self.end_by(ending.token)
                return None
            case _:
                yield token
                return None

    def end_by(self, token: Any):
        """Resolves a terminating token: DONE when it is meant for this step."""
        if isinstance(token, Closer) and token.closes(self):
            return DONE
        return Terminated(token)

    def run_with(self, env: Environment, values: Iterable[Any]):
        """The rewrite rule. The base step yields every value unchanged."""
        yield from values


def define_steps(cls, name: Optional[str] = None, *args) -> Tuple[Step, Step]:
    """Creates the priority-0 and priority-1 instances of a step type.

    The priority-0 instance is named with an upper case letter, the
    priority-1 one with the lower case letter.
    """
    name = name or cls.__name__
    return cls(*args, priority=0, name=name.upper()), cls(*args, priority=1, name=name.lower())


R, r = define_steps(Step, "R")


# =================================================================
# Built-in steps
# =================================================================

class WithStep(Step):
    """
    Calls function values with the scope and the process args as the first
    two arguments, followed by the values accumulated so far in the step.

    Iterators, among the values or returned by a function, are flattened into
    the output right away. For a returned generator, its return value is the
    call result. Non-None call results join the accumulated arguments; the
    last one is yielded at the end.
    """
    def run_with(self, env, values):
        accumulated = []
        last = None
        for value in values:
            match kind_of(value):
                case TokenKind.LAZY:
                    yield from value
                case TokenKind.CALLABLE:
                    result = value(env.scope, env.args, *accumulated)
                    if isinstance(result, collections.abc.Generator):
                        result = yield from result
                    elif isinstance(result, collections.abc.Iterator):
                        yield from result
                        result = None
                    if result is not None:
                        accumulated.append(result)
                        last = result
                case TokenKind.LITERAL:
                    accumulated.append(value.value)
                case _:
                    if value is not None:
                        accumulated.append(value)
        if last is not None:
            yield last


W, w = define_steps(WithStep, "W")


class PipeStep(Step):
    """
    Pipes values through functions: each function is called with the current
    argument list and its result becomes the only argument of the next one.

    The first list is a copy of the process args. Other values are appended
    to the current list. The final result is yielded unless it is None.
    """
    def run_with(self, env, values):
        args = list(env.args)
        called = False
        result = None
        for value in values:
            match kind_of(value):
                case TokenKind.CALLABLE:
                    result = value(*args)
                    args = [result]
                    called = True
                case TokenKind.LITERAL:
                    args.append(value.value)
                case _:
                    if value is not None:
                        args.append(value)
        if called and result is not None:
            yield result


P, p = define_steps(PipeStep, "P")


class FuncStep(Step):
    """Delegates the rewrite to ``interpreter(values, env)``, which returns an iterable or None."""
    def __init__(self, interpreter: Callable, priority: int = 0, name: Optional[str] = None):
        super().__init__(priority, name or f"F({getattr(interpreter, '__name__', 'interpreter')})")
        self.interpreter = interpreter

    def run_with(self, env, values):
        result = self.interpreter(values, env)
        if result is not None:
            yield from result


def F(interpreter: Callable) -> FuncStep:
    return FuncStep(interpreter, 0)


def f(interpreter: Callable) -> FuncStep:
    return FuncStep(interpreter, 1, f"f({getattr(interpreter, '__name__', 'interpreter')})")


class ArgsStep(Step):
    """Yields the process args at the collected indices, or all of them."""
    def run_with(self, env, values):
        count = 0
        for index in values:
            yield env.args[index]
            count += 1
        if count == 0:
            yield from env.args


A, a = define_steps(ArgsStep, "A")


class ManyStep(Step):
    """
    Spreads values: iterables yield their items, mappings their (key, value)
    pairs and plain objects their (attribute, value) pairs. Other values are
    dropped.
    """
    def run_with(self, env, values):
        for value in values:
            if isinstance(value, collections.abc.Mapping):
                yield from value.items()
            elif isinstance(value, collections.abc.Iterable):
                yield from value
            elif hasattr(value, '__dict__'):
                yield from vars(value).items()


M, m = define_steps(ManyStep, "M")


class OneStep(Step):
    """Packs all the collected values into a single list."""
    def run_with(self, env, values):
        yield list(values)


O, o = define_steps(OneStep, "O")


class GetStep(Step):
    """
    Reads a deep path. The first value is the path; with no further values
    it is read off the scope, otherwise off each following value. With no
    values at all the scope itself is yielded.
    """
    def run_with(self, env, values):
        count = 0
        path = None
        for value in values:
            if count == 0:
                path = value
            else:
                yield paths.get(value, path)
            count += 1
        if count == 0:
            yield env.scope
        elif count == 1:
            yield paths.get(env.scope, path)


G, g = define_steps(GetStep, "G")


class SetStep(Step):
    """
    Writes a deep path. Values are: path, value, then targets. A single value
    replaces the scope outright; a path and a value write on the scope;
    otherwise the write happens on each target. The written value is yielded
    once per write.
    """
    def run_with(self, env, values):
        count = 0
        path = new_value = None
        for value in values:
            if count == 0:
                path = value
            elif count == 1:
                new_value = value
            else:
                yield paths.set(value, path, new_value)
            count += 1
        if count == 1:
            env.scope = path
            yield path
        elif count == 2:
            yield paths.set(env.scope, path, new_value)


S, s = define_steps(SetStep, "S")


class CallStep(Step):
    """
    Calls a method at a deep path. Values are: path, argument list, then
    targets. Without targets the method is called on the scope.
    """
    def run_with(self, env, values):
        count = 0
        path = None
        args = ()
        for value in values:
            if count == 0:
                path = value
            elif count == 1:
                args = value
            else:
                yield paths.call(value, path, *args)
            count += 1
        if count == 1:
            yield paths.call(env.scope, path)
        elif count == 2:
            yield paths.call(env.scope, path, *args)


C, c = define_steps(CallStep, "C")


class DeleteStep(Step):
    """
    Deletes a deep path from the scope, or from each following value. With
    no values at all the scope itself is dropped. Yields nothing.
    """
    def run_with(self, env, values):
        count = 0
        path = None
        for value in values:
            if count == 0:
                path = value
            else:
                paths.delete(value, path)
            count += 1
        if count == 0:
            env.scope = None
        elif count == 1:
            paths.delete(env.scope, path)
        yield from ()


D, d = define_steps(DeleteStep, "D")


class NullStep(Step):
    """Yields nothing. Nested steps still run, so it silences side-effect steps."""
    def run_with(self, env, values):
        yield from ()


N, n = define_steps(NullStep, "N")


class EarlyStep(Step):
    """
    Aliases a chain of tokens: runs a fresh process made of the fixed prefix
    followed by the collected values, with the same scope and args.
    """
    def __init__(self, tokens: Iterable[Any], priority: int = 0, name: Optional[str] = None):
        super().__init__(priority, name)
        self.tokens = list(tokens)

    def __repr__(self) -> str:
        letter = 'e' if self.priority else 'E'
        return f"{letter}({_fmt(self.tokens)})"

    def run_with(self, env, values):
        from stepwise.stepwise_runtime import Process  # local import to avoid cycle
        yield from Process(chain(self.tokens, values)).gen_with(env.scope, *env.args)


def E(tokens: Iterable[Any]) -> EarlyStep:
    return EarlyStep(tokens, 0)


def e(tokens: Iterable[Any]) -> EarlyStep:
    return EarlyStep(tokens, 1)


# Long-form names.
Run, run = R, r
Withr, withr = W, w
Pipe, pipe = P, p
Args, args = A, a
Many, many = M, m
One, one = O, o
Getr, getr = G, g
Setr, setr = S, s
Callr, callr = C, c
Delr, delr = D, d
Nullr, nullr = N, n
Func, func = F, f
Est, est = E, e

STEPS = {step.name: step for step in (R, r, W, w, P, p, A, a, M, m, O, o, G, g, S, s, C, c, D, d, N, n)}
STEPS.update(
    Run=Run, run=run, Withr=Withr, withr=withr, Pipe=Pipe, pipe=pipe,
    Args=Args, args=args, Many=Many, many=many, One=One, one=one,
    Getr=Getr, getr=getr, Setr=Setr, setr=setr, Callr=Callr, callr=callr,
    Delr=Delr, delr=delr, Nullr=Nullr, nullr=nullr,
)


__all__ = [
    "Collection", "Step", "define_steps",
    "WithStep", "PipeStep", "FuncStep", "ArgsStep", "ManyStep", "OneStep",
    "GetStep", "SetStep", "CallStep", "DeleteStep", "NullStep", "EarlyStep",
    "R", "r", "W", "w", "P", "p", "F", "f", "A", "a", "M", "m", "O", "o",
    "G", "g", "S", "s", "C", "c", "D", "d", "N", "n", "E", "e", "STEPS",
    "Run", "run", "Withr", "withr", "Pipe", "pipe", "Args", "args", "Many", "many",
    "One", "one", "Getr", "getr", "Setr", "setr", "Callr", "callr", "Delr", "delr",
    "Nullr", "nullr", "Func", "func", "Est", "est",
]
