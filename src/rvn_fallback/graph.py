"""Dependency graph discovery and dependency-first ordering."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Generic, TypeVar

import networkx as nx
from graphviz import Digraph

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DependencyGraph(nx.DiGraph, Generic[T]):
    """A directed graph of package names rooted at the requested package.

    Every node carries the fetched package object in its ``package`` attribute; an edge ``a -> b``
    means ``a`` depends on ``b``.
    """

    def __init__(self, root: str = "", *args: object, **kwargs: object) -> None:
        """Initialize the graph with the name of its root package."""
        super().__init__(*args, **kwargs)
        self.root: str = root

    def add_package(self, name: str, package: T) -> None:
        """Add a fetched package under `name`."""
        self.add_node(name, package=package)

    def package(self, name: str) -> T:
        """Get the package stored under `name`."""
        return self.nodes[name]["package"]

    def dependency_order(self) -> list[T]:
        """Return every package reachable from the root, dependencies before dependents.

        This is a post-order depth-first walk (networkx walks with an explicit stack, so deep graphs do
        not hit the interpreter's recursion limit). Each package appears exactly once; members of a
        dependency cycle are emitted in walk order.
        """
        if self.root not in self:
            return []
        return [self.package(name) for name in nx.dfs_postorder_nodes(self, source=self.root)]

    def to_dot(self) -> Digraph:
        """Render a Graphviz Dot graph of the dependency hierarchy."""
        dot = Digraph(comment=f"Dependencies for {self.root}")
        for name in self:
            dot.node(name, label=str(self.package(name)), shape="rectangle" if name == self.root else "ellipse")
        for dependent, dependency in self.edges:
            dot.edge(dependent, dependency)
        return dot


def discover(
    root_name: str,
    root: T,
    fetch: Callable[[str], T | None],
    dependency_names: Callable[[T], Iterable[str]],
    key: Callable[[T], str],
) -> DependencyGraph[T]:
    """Walk the dependency graph of `root` with a work-stack, fetching each package once.

    Args:
        root_name: Name the root was requested under
        root: The already-fetched root package
        fetch: Looks up a dependency by name; returns None when it should be skipped
        dependency_names: Normalized dependency names of a package
        key: Canonical name of a fetched package

    Returns:
        The discovered graph. Dependencies that could not be fetched are not part of it.

    """
    graph: DependencyGraph[T] = DependencyGraph(key(root))
    # requested name -> canonical name of what it resolved to
    resolved_as: dict[str, str] = {root_name: key(root)}
    requested_edges: list[tuple[str, str]] = []
    visited: set[str] = {root_name, key(root)}

    def expand(name: str, package: T) -> None:
        graph.add_package(name, package)
        deps = [dep for dep in dependency_names(package) if dep]
        for dep in deps:
            requested_edges.append((name, dep))
        # reversed so that the first listed dependency is expanded first
        stack.extend(dep for dep in reversed(deps) if dep not in visited)

    stack: list[str] = []
    expand(key(root), root)
    while stack:
        name = stack.pop()
        if name in visited:
            continue
        visited.add(name)
        package = fetch(name)
        if package is None:
            logger.debug("Skipping dependency %s: not available", name)
            continue
        canonical = key(package)
        resolved_as[name] = canonical
        if canonical in graph:
            continue
        visited.add(canonical)
        expand(canonical, package)

    for dependent, dep in requested_edges:
        target = resolved_as.get(dep, dep)
        if target in graph and target != dependent:
            graph.add_edge(dependent, target)
    return graph


def resolve_dependency_order(
    root_name: str,
    root: T,
    fetch: Callable[[str], T | None],
    dependency_names: Callable[[T], Iterable[str]],
    key: Callable[[T], str],
) -> list[T]:
    """Resolve `root` and its transitive dependencies into a dependency-first sequence."""
    return discover(root_name, root, fetch, dependency_names, key).dependency_order()
