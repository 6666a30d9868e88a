"""
A pretty-printer for stepwise tokens and values.
"""
import collections.abc

from stepwise.stepwise_datatypes import Closer, FunctionValue, Environment
from stepwise.stepwise_paths import Field, Call, DeepKey
from stepwise.stepwise_interpreter import Step, EarlyStep
from stepwise.stepwise_runtime import Process, StepTemplate, APPEND


class Printer:
    """Formats token sequences and their values into short readable strings."""

    def __init__(self, indent_width=2, max_items=None):
        self._indent_char = " " * indent_width
        self.max_items = max_items
        self._handlers = self._create_handlers()

    def pformat(self, obj, level=0):
        """Public entry point to format an object."""
        handler = self._get_handler(obj)
        return handler(obj, level)

    def _get_handler(self, obj):
        """Dispatcher to find the correct formatting method."""
        # Fast path for singletons
        if obj is APPEND: return lambda o, l: "APPEND"

        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        if isinstance(obj, EarlyStep): return self._pformat_early_step
        if isinstance(obj, Step): return self._pformat_step
        if isinstance(obj, collections.abc.Mapping): return self._pformat_dict
        if isinstance(obj, (list, tuple)): return self._pformat_list
        if isinstance(obj, collections.abc.Iterator): return self._pformat_iterator
        if callable(obj): return self._pformat_callable
        # Default to Python's repr for unknown types
        return lambda o, l: repr(o)

    def _create_handlers(self):
        return {
            str: self._pformat_str,
            int: self._pformat_primitive,
            float: self._pformat_primitive,
            bool: self._pformat_primitive,
            type(None): self._pformat_primitive,
            Closer: self._pformat_closer,
            FunctionValue: self._pformat_function_value,
            Field: self._pformat_field,
            Call: self._pformat_call,
            DeepKey: self._pformat_deep_key,
            Process: self._pformat_process,
            StepTemplate: self._pformat_template,
            Environment: self._pformat_environment,
        }

    def _pformat_primitive(self, obj, level):
        return repr(obj)

    def _pformat_str(self, obj, level):
        return repr(obj)

    def _items(self, items, level):
        items = list(items)
        shown = items if self.max_items is None else items[:self.max_items]
        parts = [self.pformat(item, level + 1) for item in shown]
        if len(shown) < len(items):
            parts.append("...")
        return parts

    def _pformat_list(self, obj, level):
        open_char, close_char = ('(', ')') if isinstance(obj, tuple) else ('[', ']')
        parts = self._items(obj, level)
        if isinstance(obj, tuple) and len(parts) == 1:
            parts[0] += ","
        return f"{open_char}{', '.join(parts)}{close_char}"

    def _pformat_dict(self, obj, level):
        if not obj:
            return "{}"
        items = list(obj.items())
        shown = items if self.max_items is None else items[:self.max_items]
        pairs = [f"{self.pformat(k, level + 1)}: {self.pformat(v, level + 1)}" for k, v in shown]
        if len(shown) < len(items):
            pairs.append("...")
        return "{" + ", ".join(pairs) + "}"

    def _pformat_iterator(self, obj, level):
        # Never consume an iterator just to print it.
        return f"<{type(obj).__name__}>"

    def _pformat_callable(self, obj, level):
        name = getattr(obj, '__qualname__', None) or getattr(obj, '__name__', None)
        if isinstance(name, str) and name:
            return name
        return "<callable>"

    def _pformat_step(self, obj, level):
        return obj.name

    def _pformat_early_step(self, obj, level):
        letter = 'e' if obj.priority else 'E'
        return f"{letter}({self._pformat_list(obj.tokens, level)})"

    def _pformat_closer(self, obj, level):
        if obj.step is None:
            return "$"
        return f"$({self.pformat(obj.step, level)})"

    def _pformat_function_value(self, obj, level):
        return f"fn({self.pformat(obj.value, level)})"

    def _pformat_field(self, obj, level):
        if isinstance(obj.name, str) and obj.name.isidentifier():
            return f".{obj.name}"
        return f"[{self.pformat(obj.name, level)}]"

    def _pformat_call(self, obj, level):
        return "(" + ", ".join(self.pformat(arg, level + 1) for arg in obj.args) + ")"

    def _pformat_deep_key(self, obj, level):
        return "deep" + "".join(self.pformat(seg, level) for seg in obj)

    def _pformat_process(self, obj, level):
        tokens = obj.tokens
        if isinstance(tokens, collections.abc.Mapping):
            tokens = list(tokens.values())
        if isinstance(tokens, collections.abc.Iterator):
            return "process <lazy>"
        body = self._format_tokens(tokens, level)
        return f"process {body}"

    def _pformat_template(self, obj, level):
        slots = ", ".join(f"{name}@{self.pformat(index, level)}" for name, index in obj.slots.items())
        return f"template {self._format_tokens(obj.tokens, level)} {{{slots}}}"

    def _pformat_environment(self, obj, level):
        return f"<env scope={self.pformat(obj.scope, level + 1)} args={self.pformat(obj.args, level + 1)}>"

    def _format_tokens(self, tokens, level):
        """
        Lays out a token list one statement per line: a new line starts at
        each priority-0 step after the first token.
        """
        lines = []
        current = []
        for token in tokens:
            if isinstance(token, Step) and not token.priority and current:
                lines.append(current)
                current = []
            current.append(self.pformat(token, level + 1))
        if current:
            lines.append(current)
        if len(lines) <= 1:
            return "[" + " ".join(lines[0] if lines else []) + "]"
        inner_indent = self._indent_char * (level + 1)
        outer_indent = self._indent_char * level
        body = "\n".join(inner_indent + " ".join(line) for line in lines)
        return f"[\n{body}\n{outer_indent}]"
