"""
stepwise: a small interpreter that rewrites flat token sequences with steps.
"""
from stepwise.stepwise_datatypes import (
    TokenKind, Token, Closer, CLOSE, close, FunctionValue, fn, Environment,
    DONE, Terminated, kind_of,
)
from stepwise.stepwise_paths import Field, Call, DeepKey, deep
from stepwise.stepwise_interpreter import (
    Collection, Step, define_steps,
    WithStep, PipeStep, FuncStep, ArgsStep, ManyStep, OneStep,
    GetStep, SetStep, CallStep, DeleteStep, NullStep, EarlyStep,
    R, r, W, w, P, p, F, f, A, a, M, m, O, o,
    G, g, S, s, C, c, D, d, N, n, E, e, STEPS,
    Run, run, Withr, withr, Pipe, pipe, Args, args, Many, many, One, one,
    Getr, getr, Setr, setr, Callr, callr, Delr, delr, Nullr, nullr,
    Func, func, Est, est,
)
from stepwise.stepwise_runtime import (
    Process, process, APPEND, StepTemplate, template,
    ExecutionResult, ProcessRunner,
)
from stepwise.stepwise_printer import Printer

__version__ = "0.1.0"
