"""
Deep-path resolution shared by the path-oriented steps.

A path is either a single key, a list of segments or a DeepKey. Each segment
is a Field (member access) or a Call (invoke the value reached so far). All
segments but the last are used to walk to the object that holds the target
member; the last one names the member being read, written, invoked or deleted.
"""
import collections.abc
from typing import Any, List, Tuple, Union


class PathSegment:
    """Base class for the components of a deep path."""
    pass


class Field(PathSegment):
    """A member access segment: a mapping key, a sequence index or an attribute."""
    def __init__(self, name: Any):
        self.name = name

    def __repr__(self) -> str:
        return f"Field({self.name!r})"

    def __eq__(self, other):
        return isinstance(other, Field) and self.name == other.name

    def __hash__(self):
        return hash((Field, self.name))


class Call(PathSegment):
    """A call segment, holding the positional arguments of the call."""
    def __init__(self, args=()):
        self.args = tuple(args)

    def __repr__(self) -> str:
        return f"Call({self.args!r})"

    def __eq__(self, other):
        return isinstance(other, Call) and self.args == other.args

    def __hash__(self):
        return hash((Call, self.args))


class DeepKey:
    """Builds deep paths with attribute, item and call syntax.

    ``deep.a[0].b(1, 2)`` is the path
    ``[Field('a'), Field(0), Field('b'), Call((1, 2))]``. A DeepKey can be
    used anywhere a path is expected. Names starting with an underscore are
    not turned into segments; use item syntax for those: deep['_x'].
    """
    def __init__(self, segments=()):
        object.__setattr__(self, '_segments', tuple(segments))

    @property
    def segments(self) -> List[PathSegment]:
        return list(self._segments)

    def __getattr__(self, name: str) -> 'DeepKey':
        if name.startswith('_'):
            raise AttributeError(name)
        return DeepKey(self._segments + (Field(name),))

    def __getitem__(self, key: Any) -> 'DeepKey':
        return DeepKey(self._segments + (Field(key),))

    def __call__(self, *args) -> 'DeepKey':
        return DeepKey(self._segments + (Call(args),))

    def __setattr__(self, name, value):
        raise AttributeError("DeepKey is immutable")

    def __iter__(self):
        return iter(self._segments)

    def __len__(self) -> int:
        return len(self._segments)

    def __repr__(self) -> str:
        return f"DeepKey({list(self._segments)!r})"

    def __eq__(self, other):
        return isinstance(other, DeepKey) and self._segments == other._segments

    def __hash__(self):
        return hash(self._segments)


deep = DeepKey()


def to_segments(path: Any) -> List[PathSegment]:
    """Normalizes a key, a list of segments or a DeepKey into segments.

    Inside a list, PathSegments are kept, nested lists become Call segments and
    anything else becomes a Field. A non-list value is a single Field (tuples
    included, since they are valid mapping keys).
    """
    if isinstance(path, DeepKey):
        return path.segments
    if isinstance(path, PathSegment):
        return [path]
    if not isinstance(path, list):
        return [Field(path)]
    segments = []
    for seg in path:
        if isinstance(seg, PathSegment):
            segments.append(seg)
        elif isinstance(seg, list):
            segments.append(Call(seg))
        else:
            segments.append(Field(seg))
    return segments


# =================================================================
# Member access
# =================================================================

def _is_indexed(container, key) -> bool:
    if isinstance(container, collections.abc.Mapping):
        return True
    return (isinstance(container, collections.abc.Sequence)
            and not isinstance(container, str)
            and isinstance(key, (int, slice)))


def _read_field(container, name):
    if _is_indexed(container, name):
        # Keys win; a name that is not a key can still reach a mapping method.
        if (isinstance(container, collections.abc.Mapping) and isinstance(name, str)
                and name not in container and hasattr(container, name)):
            return getattr(container, name)
        return container[name]
    return getattr(container, name)


def _write_field(container, name, value):
    if _is_indexed(container, name):
        container[name] = value
        return
    setattr(container, name, value)


def _delete_field(container, name):
    if _is_indexed(container, name):
        old = container[name]
        del container[name]
        return old
    old = getattr(container, name)
    delattr(container, name)
    return old


def destructure(obj: Any, path: Any) -> Tuple[Any, PathSegment]:
    """
    Walks all but the last segment of ``path`` starting from ``obj``.
    Returns (parent, member): the object holding the target member and the
    final segment naming it.
    """
    segments = to_segments(path)
    if not segments:
        raise ValueError("Path resolution requires at least one segment.")

    parent = obj
    for seg in segments[:-1]:
        if isinstance(seg, Call):
            parent = parent(*seg.args)
        else:
            # getattr hands back bound methods, so a following Call
            # already has its receiver.
            parent = _read_field(parent, seg.name)
    return parent, segments[-1]


def get(obj: Any, path: Any) -> Any:
    """Reads the member at ``path``. A final Call segment invokes the parent."""
    parent, member = destructure(obj, path)
    if isinstance(member, Call):
        return parent(*member.args)
    return _read_field(parent, member.name)


def set(obj: Any, path: Any, value: Any) -> Any:
    """Writes ``value`` at ``path`` and returns it.

    When the final segment is a Call, each of its arguments is taken as a key
    and the value is written under all of them.
    """
    parent, member = destructure(obj, path)
    if isinstance(member, Call):
        for key in member.args:
            set(parent, key, value)
    else:
        _write_field(parent, member.name, value)
    return value


def call(obj: Any, path: Any, *args) -> Any:
    """Invokes the member at ``path`` with ``args``."""
    parent, member = destructure(obj, path)
    if isinstance(member, Call):
        return parent(*member.args)(*args)
    return _read_field(parent, member.name)(*args)


def delete(obj: Any, path: Any) -> Union[Any, List[Any]]:
    """Removes the member at ``path`` and returns what was removed.

    A final Call segment deletes each of its arguments as a key and returns
    the list of removed values.
    """
    parent, member = destructure(obj, path)
    if isinstance(member, Call):
        return [delete(parent, key) for key in member.args]
    return _delete_field(parent, member.name)


__all__ = [
    "PathSegment", "Field", "Call", "DeepKey", "deep",
    "to_segments", "destructure", "get", "set", "call", "delete",
]
