"""Static validation of composed resource graphs.

Detects the class of errors that Azure would otherwise report only at
submission time, often with an opaque provider message:
- References to resources that are not part of the graph
- References to resources that exist under a narrower condition than the
  referencing resource
- Resources declared under contradictory or unsatisfied conditions
- Dependency cycles
"""

from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger

from src.infra.errors import CompositionInvariantViolation

from .resources import Condition, Ref, ResourceGraph


@dataclass
class GraphIssue:
    """A single invariant violation found in a resource graph."""

    source: str
    description: str
    target: str = ""

    def __str__(self) -> str:
        if self.target:
            return f"{self.source} -> {self.target}: {self.description}"
        return f"{self.source}: {self.description}"


@dataclass
class GraphValidationResult:
    """Result of validating a resource graph."""

    issues: list[GraphIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.issues

    def raise_for_issues(self) -> None:
        """Raise CompositionInvariantViolation listing every issue found."""
        if self.is_valid:
            return
        details = "\n".join(f"• {issue}" for issue in self.issues)
        raise CompositionInvariantViolation(
            f"Resource graph has {len(self.issues)} invalid reference(s)",
            details=details,
        )


def check_graph(graph: ResourceGraph) -> GraphValidationResult:
    """Collect all invariant violations in ``graph`` without raising."""
    result = GraphValidationResult()

    for descriptor in graph:
        if descriptor.condition.is_contradictory:
            result.issues.append(
                GraphIssue(
                    descriptor.symbol,
                    f"declared under contradictory condition ({descriptor.condition})",
                )
            )
        elif not descriptor.condition.holds_for(graph.flags):
            result.issues.append(
                GraphIssue(
                    descriptor.symbol,
                    f"present although its condition ({descriptor.condition}) "
                    "does not hold",
                )
            )

        for ref in descriptor.references():
            issue = _check_reference(graph, descriptor.symbol, descriptor.condition, ref)
            if issue:
                result.issues.append(issue)

    for output in graph.outputs:
        for ref in output.references():
            issue = _check_reference(graph, f"output:{output.name}", output.condition, ref)
            if issue:
                result.issues.append(issue)

    if result.is_valid:
        try:
            graph.ordered()
        except CompositionInvariantViolation as e:
            result.issues.append(GraphIssue("graph", f"{e.message} ({e.details})"))

    return result


def validate_graph(graph: ResourceGraph) -> ResourceGraph:
    """Validate ``graph`` and return it unchanged.

    Raises:
        CompositionInvariantViolation: If any reference can dangle
    """
    result = check_graph(graph)
    result.raise_for_issues()
    logger.debug(f"Resource graph valid: {len(graph)} resources, {len(graph.outputs)} outputs")
    return graph


def _check_reference(
    graph: ResourceGraph, source: str, source_condition: Condition, ref: Ref
) -> GraphIssue | None:
    target = graph.get(ref.target)
    if target is None:
        return GraphIssue(source, "reference to a resource missing from the graph", ref.target)

    # The edge is only taken when both the referrer and its branch hold, so the
    # target must be present whenever that combined condition is true.
    effective = source_condition & ref.when
    if not effective.implies(target.condition):
        return GraphIssue(
            source,
            f"target exists only when ({target.condition}) but is referenced "
            f"when ({effective})",
            ref.target,
        )
    return None
