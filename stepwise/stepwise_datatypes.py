
"""
Defines the core data types for the stepwise runtime.

This module provides the token kinds the interpreter switches on, the
termination markers used to cut collections short, and the per-run
Environment shared by every step of a run.
"""

import collections.abc
import enum
from dataclasses import dataclass, field
from typing import Any, List, Optional, TYPE_CHECKING

from stepwise.stepwise_paths import PathSegment, DeepKey

if TYPE_CHECKING:
    from stepwise.stepwise_interpreter import Step


class TokenKind(enum.Enum):
    """The kinds of token the interpreter distinguishes."""
    STEP = "step"
    CLOSER = "closer"
    LITERAL = "literal"      # a FunctionValue: use the function, don't call it
    CALLABLE = "callable"
    LAZY = "lazy"            # an iterator, i.e. a nested lazy sequence
    VALUE = "value"


# =================================================================
# Engine-owned tokens
# =================================================================

class Token:
    """Base class for tokens owned by the engine.

    Subclasses fix their ``kind`` at class level, so classifying them never
    needs to sniff their shape.
    """
    kind: TokenKind = TokenKind.VALUE


class Closer(Token):
    """A request to stop collecting.

    An unaddressed Closer stops the nearest collecting step. A Closer
    addressed to a step keeps propagating up through enclosing collections
    until it reaches that step.
    """
    kind = TokenKind.CLOSER

    def __init__(self, step: Optional['Step'] = None):
        self.step = step

    def closes(self, step: 'Step') -> bool:
        return self.step is None or self.step is step

    def __repr__(self) -> str:
        if self.step is None:
            return "$"
        return f"$({self.step!r})"

    def __eq__(self, other):
        return isinstance(other, Closer) and self.step is other.step

    def __hash__(self):
        return hash((Closer, id(self.step)))


CLOSE = Closer()


def close(step: Optional['Step'] = None) -> Closer:
    """Returns a Closer for ``step``, or the unaddressed Closer."""
    if step is None:
        return CLOSE
    return Closer(step)


class FunctionValue(Token):
    """Wraps a function so steps that call functions pass it along instead."""
    kind = TokenKind.LITERAL

    def __init__(self, value: Any):
        self.value = value

    def __repr__(self) -> str:
        name = getattr(self.value, '__name__', None) or repr(self.value)
        return f"fn({name})"

    def __eq__(self, other):
        return isinstance(other, FunctionValue) and self.value is other.value

    def __hash__(self):
        return hash((FunctionValue, id(self.value)))


def fn(value: Any) -> FunctionValue:
    """Marks a function as a literal argument for PipeStep and WithStep."""
    return FunctionValue(value)


def kind_of(token: Any) -> TokenKind:
    """Classifies a token. Engine tokens carry their own kind."""
    if isinstance(token, Token):
        return token.kind
    # Paths are data even though DeepKey is callable.
    if isinstance(token, (DeepKey, PathSegment)):
        return TokenKind.VALUE
    if callable(token):
        return TokenKind.CALLABLE
    if isinstance(token, collections.abc.Iterator):
        return TokenKind.LAZY
    return TokenKind.VALUE


# =================================================================
# Run state
# =================================================================

@dataclass
class Environment:
    """The context shared by all the steps of one run."""
    cursor: collections.abc.Iterator
    scope: Any
    args: tuple = ()
    # Steps currently evaluating, outermost first. Only used for traces.
    frames: List['Step'] = field(default_factory=list)


class _Done:
    """Collection ended normally: cursor exhausted or a Closer for this step."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "DONE"

    def __bool__(self) -> bool:
        return False


DONE = _Done()


@dataclass(frozen=True)
class Terminated:
    """Collection was cut off by a token meant for somebody else.

    ``token`` is either a priority-0 Step (which must run next) or a Closer
    addressed to an enclosing step.
    """
    token: Any

    @property
    def step(self) -> Optional['Step']:
        if kind_of(self.token) is TokenKind.STEP:
            return self.token
        return None
