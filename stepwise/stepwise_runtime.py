# stepwise runtime

import collections.abc
import os
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Literal, Mapping, Optional, Tuple, Union

from stepwise import stepwise_paths as paths
from stepwise.stepwise_datatypes import Environment, TokenKind, kind_of
from stepwise.stepwise_interpreter import Step, EarlyStep, _dbg

# ===================================================================
# 1. Process
# ===================================================================


class Process:
    """
    A sequence of tokens that can be run like a function.

    The first token must be a step; otherwise running the process produces
    nothing. ``tokens`` may be any iterable, or a mapping whose values are
    used in insertion order. Every call gets its own Environment, so one
    Process can be run any number of times. A process built over a one-shot
    iterator can only run once.
    """

    def __init__(self, tokens: Union[Iterable[Any], Mapping[Any, Any]], list_scope: bool = False):
        self.tokens = tokens
        self.list_scope = list_scope

    def statements(self, scope: Any, *args) -> collections.abc.Iterator:
        """Returns a fresh cursor over the tokens."""
        if isinstance(self.tokens, collections.abc.Mapping):
            return iter(self.tokens.values())
        return iter(self.tokens)

    def fresh_scope(self, *args) -> Union[list, dict]:
        """Builds the scope used when the caller does not supply one."""
        return [] if self.list_scope else {}

    def start(self, scope: Any, *args) -> Optional[Tuple[Step, Environment]]:
        """Pulls the entry step and builds the run's Environment."""
        cursor = self.statements(scope, *args)
        entry = next(cursor, None)
        if kind_of(entry) is not TokenKind.STEP:
            _dbg("process does not start with a step:", repr(entry))
            return None
        return entry, Environment(cursor=cursor, scope=scope, args=args)

    def gen_with(self, scope: Any, *args):
        """Lazily yields the output of a run over ``scope``."""
        started = self.start(scope, *args)
        if started is None:
            return
        step, env = started
        yield from step.run(env)

    def gen(self, *args):
        """Lazily yields the output of a run over a fresh scope."""
        return self.gen_with(self.fresh_scope(*args), *args)

    def call_with(self, scope: Any, *args) -> Any:
        """Runs until the first output value and returns it (None if there is none)."""
        outputs = self.gen_with(scope, *args)
        try:
            return next(outputs, None)
        finally:
            outputs.close()

    def call(self, *args) -> Any:
        return self.call_with(self.fresh_scope(*args), *args)

    def __repr__(self) -> str:
        from stepwise.stepwise_printer import Printer
        return f"Process({Printer().pformat(self.tokens)})"


def process(tokens: Union[Iterable[Any], Mapping[Any, Any]], list_scope: bool = False) -> Process:
    return Process(tokens, list_scope)


# ===================================================================
# 2. Step templates
# ===================================================================

class _Append:
    def __repr__(self):
        return "APPEND"


# Slot position meaning "after all the template tokens".
APPEND = _Append()


class StepTemplate:
    """
    Builds EarlySteps by inserting values into a fixed list of tokens.

    ``slots`` maps a slot name to the index its value is inserted at, or to
    APPEND. Values are inserted one at a time in the order given, so when two
    slots share an index the later one lands in front of the earlier one.
    Pass a sequence of (slot, value) pairs to make that order explicit.
    """
    def __init__(self, tokens: Iterable[Any], slots: Mapping[str, Any]):
        self.tokens = list(tokens)
        self.slots = dict(slots)

    def run(self, values: Union[Mapping[str, Any], Iterable[Tuple[str, Any]]], priority: int = 0) -> EarlyStep:
        tokens = list(self.tokens)
        items = values.items() if isinstance(values, collections.abc.Mapping) else values
        for slot, value in items:
            try:
                index = self.slots[slot]
            except KeyError:
                raise KeyError(f"Unknown template slot: {slot!r}") from None
            if index is APPEND:
                tokens.append(value)
            else:
                tokens.insert(index, value)
        return EarlyStep(tokens, priority)


def template(tokens: Iterable[Any], slots: Mapping[str, Any]) -> StepTemplate:
    return StepTemplate(tokens, slots)


# ===================================================================
# 3. Process Execution
# ===================================================================

DEFAULT_MAX_OUTPUT = 100000


def _raised_by_path_lookup(e: Exception) -> bool:
    """True when the innermost frame of the traceback is a deep-path accessor."""
    tb = e.__traceback__
    if tb is None:
        return False
    while tb.tb_next is not None:
        tb = tb.tb_next
    return tb.tb_frame.f_globals.get("__name__") == paths.__name__


def max_output() -> int:
    """Default cap on the values ProcessRunner collects; STEPWISE_MAX_OUTPUT overrides it."""
    raw = os.environ.get("STEPWISE_MAX_OUTPUT")
    if raw is None:
        return DEFAULT_MAX_OUTPUT
    try:
        return int(raw)
    except ValueError:
        return DEFAULT_MAX_OUTPUT


@dataclass
class ExecutionResult:
    """The structured result of running a process to completion."""
    status: Literal['success', 'error']
    values: List[Any] = field(default_factory=list)
    scope: Any = None
    error_message: Optional[str] = None
    frames: List[Step] = field(default_factory=list)
    truncated: bool = False

    @property
    def value(self) -> Any:
        """The first output value, like Process.call."""
        return self.values[0] if self.values else None

    def format_error(self) -> str:
        if self.status != 'error':
            return ""
        return str(self.error_message or "Unknown error")


class ProcessRunner:
    """Runs processes to completion, turning exceptions into ExecutionResults.

    Processes themselves never catch anything: errors from user functions and
    path lookups propagate out of the output iterator. The runner is the
    boundary that keeps what was produced before the fault and formats the
    error with the steps that were active when it happened.
    """

    def __init__(self, limit: Optional[int] = None):
        self.limit = limit

    def run(self, proc: Process, *args, scope: Any = None, limit: Optional[int] = None) -> ExecutionResult:
        if scope is None:
            scope = proc.fresh_scope(*args)
        started = proc.start(scope, *args)
        if started is None:
            return ExecutionResult(status='success', scope=scope)
        step, env = started

        cap = limit if limit is not None else (self.limit if self.limit is not None else max_output())
        values: List[Any] = []
        outputs = step.run(env)
        truncated = False
        try:
            for value in outputs:
                # Only a value produced past the cap marks the output as truncated.
                if len(values) >= cap:
                    truncated = True
                    break
                values.append(value)
        except Exception as e:
            return ExecutionResult(
                status='error',
                values=values,
                scope=env.scope,
                error_message=self._format_runtime_error(e, env),
                frames=list(env.frames),
            )
        finally:
            outputs.close()
        if truncated:
            _dbg("output truncated at", str(cap), "values")
        return ExecutionResult(status='success', values=values, scope=env.scope, truncated=truncated)

    def _format_runtime_error(self, e: Exception, env: Environment) -> str:
        from_path = _raised_by_path_lookup(e)
        match e:
            case KeyError(args=(key,)) if from_path:
                msg = f"PathNotFound: {key}"
            case KeyError() if from_path:
                msg = "PathNotFound"
            case IndexError() | AttributeError() if from_path:
                msg = f"PathNotFound: {e}"
            case _:
                msg = f"{type(e).__name__}: {e}"

        trace = self._format_trace(env.frames)
        if trace:
            msg += "\n" + trace
        return msg

    def _format_trace(self, frames: List[Step]) -> str:
        if not frames:
            return ""
        from stepwise.stepwise_printer import Printer
        pf = Printer().pformat
        return "stepwise trace: " + " ".join(f"({pf(frame)})" for frame in frames)


__all__ = [
    "Process", "process", "APPEND", "StepTemplate", "template",
    "ExecutionResult", "ProcessRunner", "max_output", "DEFAULT_MAX_OUTPUT",
]
