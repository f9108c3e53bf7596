"""In-memory resource tree: apps, stacks, and resources addressed by path."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterator

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

PATH_SEP = "/"
DEFAULT_CHILD_IDS: tuple[str, ...] = ("Resource", "Default")

_HIDDEN_ID = "Default"
_HIDDEN_FROM_HUMAN_ID = "Resource"
_HASH_LEN = 8
_MAX_HUMAN_LEN = 240
_NON_ALPHANUMERIC = re.compile(r"[^A-Za-z0-9]")


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Annotation:
    """A leveled diagnostic message attached to a construct."""

    level: str  # "info" | "warning" | "error"
    message: str


# ---------------------------------------------------------------------------
# Constructs
# ---------------------------------------------------------------------------


class Construct:
    """A node in the resource tree.

    The path of a construct is the ``/``-joined ids of every scope below the
    root, so the root itself has the empty path and a resource ``Bucket`` in
    stack ``Stack1`` has the path ``Stack1/Bucket``.
    """

    def __init__(self, scope: Construct | None, id: str) -> None:  # noqa: A002
        if scope is not None and PATH_SEP in id:
            msg = f"Construct id '{id}' must not contain '{PATH_SEP}'"
            raise ValueError(msg)
        self.scope = scope
        self.node_id = id
        self.children: list[Construct] = []
        self.annotations: list[Annotation] = []
        if scope is not None:
            if scope.find_child(id) is not None:
                msg = f"There is already a construct with id '{id}' in '{scope.path or '<root>'}'"
                raise ValueError(msg)
            scope.children.append(self)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(path={self.path!r})"

    @property
    def scopes(self) -> list[Construct]:
        """All constructs from the root down to (and including) this one."""
        chain: list[Construct] = []
        current: Construct | None = self
        while current is not None:
            chain.append(current)
            current = current.scope
        chain.reverse()
        return chain

    @property
    def path(self) -> str:
        return PATH_SEP.join(c.node_id for c in self.scopes[1:])

    @property
    def root(self) -> Construct:
        return self.scopes[0]

    @property
    def stack(self) -> Stack | None:
        """The nearest enclosing stack (the construct itself if it is one)."""
        for construct in reversed(self.scopes):
            if isinstance(construct, Stack):
                return construct
        return None

    @property
    def default_child(self) -> Construct | None:
        for child_id in DEFAULT_CHILD_IDS:
            child = self.find_child(child_id)
            if child is not None:
                return child
        return None

    def find_child(self, id: str) -> Construct | None:  # noqa: A002
        for child in self.children:
            if child.node_id == id:
                return child
        return None

    def find_all(self) -> list[Construct]:
        """Return this construct and every descendant in depth-first pre-order."""
        return list(self._walk())

    def _walk(self) -> Iterator[Construct]:
        yield self
        for child in self.children:
            yield from child._walk()

    # -- annotations ---------------------------------------------------------

    def add_info(self, message: str) -> None:
        self.annotations.append(Annotation(level="info", message=message))

    def add_warning(self, message: str) -> None:
        self.annotations.append(Annotation(level="warning", message=message))

    def add_error(self, message: str) -> None:
        self.annotations.append(Annotation(level="error", message=message))


class App(Construct):
    """Root of a resource tree."""

    def __init__(self, outdir: str | None = None) -> None:
        super().__init__(None, "")
        self.outdir = outdir


class Stack(Construct):
    """A deployable unit of resources; may be nested inside another stack."""

    def __init__(
        self,
        scope: Construct,
        id: str,  # noqa: A002
        *,
        stack_name: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(scope, id)
        self._stack_name = stack_name
        self.metadata: dict[str, Any] = dict(metadata) if metadata else {}

    @property
    def nested(self) -> bool:
        """True when another stack encloses this one."""
        return any(isinstance(c, Stack) for c in self.scopes[:-1])

    @property
    def stack_name(self) -> str:
        if self._stack_name:
            return self._stack_name
        if self.nested:
            return self.unique_id
        return self.node_id

    @property
    def unique_id(self) -> str:
        return make_unique_id([c.node_id for c in self.scopes[1:]])

    @property
    def nested_stacks(self) -> list[Stack]:
        """Every stack below this one (not including itself)."""
        return [c for c in self.find_all()[1:] if isinstance(c, Stack)]


class CfnResource(Construct):
    """A single declared infrastructure resource."""

    def __init__(
        self,
        scope: Construct,
        id: str,  # noqa: A002
        *,
        type: str,  # noqa: A002
        properties: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(scope, id)
        if not type:
            msg = f"{self.path}: resource type must be a non-empty string"
            raise ValueError(msg)
        self.resource_type = type
        self.properties: dict[str, Any] = dict(properties) if properties else {}
        self.metadata: dict[str, Any] = dict(metadata) if metadata else {}

    def get_metadata(self, key: str) -> Any:
        return self.metadata.get(key)

    def add_metadata(self, key: str, value: Any) -> None:
        self.metadata[key] = value


# ---------------------------------------------------------------------------
# Unique ids
# ---------------------------------------------------------------------------


def make_unique_id(components: list[str]) -> str:
    """Build a token-free unique id from path components.

    ``Default`` components are dropped, the human readable part keeps only
    alphanumerics, and an 8 character hash of the full path keeps the id
    unique.  A single component is returned as-is (minus non-alphanumerics).
    """
    components = [c for c in components if c != _HIDDEN_ID]
    if not components:
        msg = "Unable to calculate a unique id for an empty set of components"
        raise ValueError(msg)

    if len(components) == 1:
        candidate = _NON_ALPHANUMERIC.sub("", components[0])
        if candidate:
            return candidate

    digest = hashlib.md5(PATH_SEP.join(components).encode("utf-8")).hexdigest()  # noqa: S324
    path_hash = digest[:_HASH_LEN].upper()

    human_parts: list[str] = []
    for component in components:
        if component == _HIDDEN_FROM_HUMAN_ID:
            continue
        if human_parts and human_parts[-1] == component:
            continue
        human_parts.append(component)
    human = "".join(_NON_ALPHANUMERIC.sub("", part) for part in human_parts)
    return human[:_MAX_HUMAN_LEN] + path_hash
