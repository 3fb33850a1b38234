"""
Resolved dependency graph and closure flattening.

The graph comes from an already-resolved lockfile, so every node is a pinned
(name, version) pair. Flattening walks it once from the root and returns the
de-duplicated closure sorted by (name, version), so the emitted source list
does not depend on lockfile order or traversal order.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Sequence, Tuple

from .dependency import Dependency
from .error_handling import ErrorCategory, GraphError, get_error_handler


@dataclass(frozen=True)
class ResolvedGraph:
    """Pinned packages and their depends-on edges, with the root marked."""

    root: Dependency
    edges: Mapping[Dependency, Sequence[Dependency]] = field(default_factory=dict)

    @property
    def nodes(self) -> List[Dependency]:
        return list(self.edges.keys())

    def dependencies_of(self, dependency: Dependency) -> Sequence[Dependency]:
        return self.edges.get(dependency, ())

    def validate(self) -> None:
        """Check the root is a node and no edge points outside the graph."""
        if self.root not in self.edges:
            _raise_graph_error(
                f"Root package {self.root} is not part of the resolved graph",
                {"root": str(self.root)},
            )
        for parent, children in self.edges.items():
            for child in children:
                if child not in self.edges:
                    _raise_graph_error(
                        f"{parent} depends on {child}, which is not in the resolved graph",
                        {"parent": str(parent), "child": str(child)},
                    )


@dataclass(frozen=True)
class Closure:
    """Every package reachable from the root, once each, in (name, version) order."""

    root: Dependency
    dependencies: Tuple[Dependency, ...]

    def __iter__(self) -> Iterator[Dependency]:
        return iter(self.dependencies)

    def __len__(self) -> int:
        return len(self.dependencies)

    def __contains__(self, item) -> bool:
        return item in self.dependencies


def _raise_graph_error(message: str, details: Dict[str, Any]) -> None:
    get_error_handler().error(
        ErrorCategory.GRAPH,
        message,
        "dependency_graph",
        "flatten_closure",
        details=details,
    )
    raise GraphError(message)


def flatten_closure(graph: ResolvedGraph) -> Closure:
    """
    Collect every package reachable from the root, including the root.

    Uses an explicit depth-first walk. ``visited`` guarantees each package is
    expanded once; ``on_path`` holds the current chain from the root so a
    back edge is reported as a cycle instead of being silently skipped.

    Raises:
        GraphError: If the graph is malformed or contains a cycle
    """
    graph.validate()

    visited = set()
    on_path = set()
    # (package, iterator over its dependencies)
    stack = [(graph.root, iter(graph.dependencies_of(graph.root)))]
    path = [graph.root]
    on_path.add(graph.root)
    visited.add(graph.root)

    while stack:
        node, children = stack[-1]
        child = next(children, None)
        if child is None:
            stack.pop()
            path.pop()
            on_path.discard(node)
            continue

        if child in on_path:
            cycle = path[path.index(child):] + [child]
            _raise_graph_error(
                "Dependency cycle detected: " + " -> ".join(str(d) for d in cycle),
                {"cycle": [str(d) for d in cycle]},
            )
        if child in visited:
            continue

        visited.add(child)
        on_path.add(child)
        path.append(child)
        stack.append((child, iter(graph.dependencies_of(child))))

    ordered = tuple(sorted(visited, key=lambda dep: (dep.name, dep.version)))
    return Closure(root=graph.root, dependencies=ordered)
