"""Resource graph model for Azure deployments.

Descriptors are plain data: the composer builds them, the validator checks
their cross-references and the template renderer turns them into ARM JSON.
Every descriptor records the condition it was declared under, and every
reference records the condition of the branch that created it, so the
conditional-consistency of the graph can be checked without contacting Azure.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from src.infra.errors import CompositionInvariantViolation

FlagLiteral = tuple[str, bool]


@dataclass(frozen=True)
class Condition:
    """Conjunction of feature-flag literals.

    An empty condition always holds. ``Condition.when(use_private_registry=True)``
    holds only when the flag is set.
    """

    literals: frozenset[FlagLiteral] = frozenset()

    @classmethod
    def when(cls, **flags: bool) -> Condition:
        return cls(frozenset(flags.items()))

    def __and__(self, other: Condition) -> Condition:
        return Condition(self.literals | other.literals)

    def implies(self, other: Condition) -> bool:
        """Whether this condition holding guarantees ``other`` holds."""
        return other.literals <= self.literals

    @property
    def is_contradictory(self) -> bool:
        return any((name, not value) in self.literals for name, value in self.literals)

    def holds_for(self, flags: Mapping[str, bool]) -> bool:
        return all(bool(flags.get(name, False)) == value for name, value in self.literals)

    def __str__(self) -> str:
        if not self.literals:
            return "always"
        parts = [
            name if value else f"not {name}" for name, value in sorted(self.literals)
        ]
        return " and ".join(parts)


ALWAYS = Condition()


class RefKind(Enum):
    """How a reference is resolved in the rendered template."""

    ID = "resourceId"
    PROPERTIES = "reference"
    KEYS = "listKeys"


@dataclass(frozen=True)
class Ref:
    """Reference from one descriptor to another.

    Attributes:
        target: Symbolic name of the referenced descriptor
        kind: Whether the id, runtime properties or keys are referenced
        path: Property path below the resolved value (e.g., ("loginServer",))
        when: Condition of the branch that declared this reference
    """

    target: str
    kind: RefKind = RefKind.ID
    path: tuple[str, ...] = ()
    when: Condition = ALWAYS


def resource_id(target: str, *, when: Condition = ALWAYS) -> Ref:
    return Ref(target, RefKind.ID, (), when)


def reference(target: str, *path: str, when: Condition = ALWAYS) -> Ref:
    return Ref(target, RefKind.PROPERTIES, tuple(path), when)


def list_keys(target: str, *path: str, when: Condition = ALWAYS) -> Ref:
    return Ref(target, RefKind.KEYS, tuple(path), when)


@dataclass(frozen=True)
class Concat:
    """String built from literal parts and references."""

    parts: tuple[str | Ref, ...]

    @classmethod
    def of(cls, *parts: str | Ref) -> Concat:
        return cls(tuple(parts))


@dataclass(frozen=True)
class Parameter:
    """Opaque deployment parameter (secrets are passed through, never read)."""

    name: str
    secure: bool = True


@dataclass
class ResourceDescriptor:
    """A single resource declaration in the graph.

    ``existing`` descriptors are referenced by name only: they participate in
    reference resolution but are never emitted as resources.
    """

    symbol: str
    type: str
    api_version: str
    name: str
    properties: dict[str, Any] = field(default_factory=dict)
    condition: Condition = ALWAYS
    depends_on: tuple[Ref, ...] = ()
    sku: dict[str, Any] | None = None
    kind: str | None = None
    identity: dict[Any, Any] | None = None
    scope: Ref | None = None
    tags: dict[str, str] = field(default_factory=dict)
    location: str | None = None
    existing: bool = False

    @property
    def name_segments(self) -> list[str]:
        """Name split into segments, one per type level for child resources."""
        return self.name.split("/")

    def references(self) -> list[Ref]:
        """All references held by this descriptor, in declaration order."""
        found: list[Ref] = []
        _collect_refs(self.properties, found)
        _collect_refs(self.identity, found)
        _collect_refs(self.sku, found)
        if self.scope is not None:
            found.append(self.scope)
        found.extend(self.depends_on)
        return found

    def dependencies(self) -> list[str]:
        """Symbolic names this descriptor depends on (unique, ordered)."""
        seen: dict[str, None] = {}
        for ref in self.references():
            if ref.target != self.symbol:
                seen.setdefault(ref.target, None)
        return list(seen)


@dataclass(frozen=True)
class OutputDescriptor:
    """Named value derived from the deployed resources."""

    name: str
    value: str | Ref | Concat
    condition: Condition = ALWAYS
    type: str = "string"

    def references(self) -> list[Ref]:
        found: list[Ref] = []
        _collect_refs(self.value, found)
        return found


def _collect_refs(value: Any, found: list[Ref]) -> None:
    if isinstance(value, Ref):
        found.append(value)
    elif isinstance(value, Concat):
        for part in value.parts:
            _collect_refs(part, found)
    elif isinstance(value, dict):
        for key, item in value.items():
            _collect_refs(key, found)
            _collect_refs(item, found)
    elif isinstance(value, (list, tuple)):
        for item in value:
            _collect_refs(item, found)


class ResourceGraph:
    """Ordered set of resource descriptors and outputs for one deployment.

    Attributes:
        flags: Feature-flag values the graph was resolved for
        outputs: Output descriptors in declaration order
    """

    def __init__(self, flags: Mapping[str, bool]) -> None:
        self.flags = dict(flags)
        self.outputs: list[OutputDescriptor] = []
        self._resources: dict[str, ResourceDescriptor] = {}

    def add(self, descriptor: ResourceDescriptor) -> ResourceDescriptor:
        if descriptor.symbol in self._resources:
            raise CompositionInvariantViolation(
                f"Resource '{descriptor.symbol}' declared twice"
            )
        self._resources[descriptor.symbol] = descriptor
        return descriptor

    def add_output(self, output: OutputDescriptor) -> None:
        if any(existing.name == output.name for existing in self.outputs):
            raise CompositionInvariantViolation(f"Output '{output.name}' declared twice")
        self.outputs.append(output)

    def get(self, symbol: str) -> ResourceDescriptor | None:
        return self._resources.get(symbol)

    def __getitem__(self, symbol: str) -> ResourceDescriptor:
        return self._resources[symbol]

    def __contains__(self, symbol: object) -> bool:
        return symbol in self._resources

    def __iter__(self) -> Iterator[ResourceDescriptor]:
        return iter(self._resources.values())

    def __len__(self) -> int:
        return len(self._resources)

    @property
    def declared(self) -> list[ResourceDescriptor]:
        """Descriptors that will be created (excludes existing references)."""
        return [d for d in self._resources.values() if not d.existing]

    def of_type(self, resource_type: str) -> list[ResourceDescriptor]:
        return [d for d in self._resources.values() if d.type == resource_type]

    def output(self, name: str) -> OutputDescriptor | None:
        return next((o for o in self.outputs if o.name == name), None)

    def ordered(self) -> list[ResourceDescriptor]:
        """Descriptors in dependency order, stable with respect to insertion.

        Raises:
            CompositionInvariantViolation: If the dependencies form a cycle
        """
        ordered: list[ResourceDescriptor] = []
        placed: set[str] = set()
        pending = list(self._resources.values())

        while pending:
            ready = [
                d
                for d in pending
                if all(
                    dep in placed or dep not in self._resources
                    for dep in d.dependencies()
                )
            ]
            if not ready:
                cycle = ", ".join(d.symbol for d in pending)
                raise CompositionInvariantViolation(
                    "Resource dependencies form a cycle",
                    details=f"Involved resources: {cycle}",
                )
            for descriptor in ready:
                ordered.append(descriptor)
                placed.add(descriptor.symbol)
            pending = [d for d in pending if d.symbol not in placed]

        return ordered
