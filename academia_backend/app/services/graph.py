import logging
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Hashable, Iterable

from app.core.errors import CircularDependencyError

logger = logging.getLogger(__name__)

_DONE = object()


@dataclass
class PrereqGraph:
    nodes: set[Hashable]
    edges: dict[Hashable, set[Hashable]]  # prereq -> dependents
    prereqs: dict[Hashable, set[Hashable]]  # course -> prereqs


@dataclass
class CircularDependencyValidationResult:
    is_valid: bool
    error_message: str | None = None
    circular_path: list[Hashable] = field(default_factory=list)


def edges_to_prereq_map(edges: Iterable[tuple[Hashable, Hashable]]) -> dict[Hashable, set[Hashable]]:
    prereq_map: dict[Hashable, set[Hashable]] = defaultdict(set)
    for course, prereq in edges:
        prereq_map[course].add(prereq)
    return dict(prereq_map)


def build_graph(prereq_map: dict[Hashable, set[Hashable]]) -> PrereqGraph:
    nodes = set(prereq_map.keys())
    edges: dict[Hashable, set[Hashable]] = defaultdict(set)
    prereqs: dict[Hashable, set[Hashable]] = defaultdict(set)

    for course, reqs in prereq_map.items():
        nodes.update(reqs)
        prereqs[course].update(reqs)
        for req in reqs:
            edges[req].add(course)

    return PrereqGraph(nodes=nodes, edges=edges, prereqs=prereqs)


def validate_prerequisite_chain(
    edges: Iterable[tuple[Hashable, Hashable]],
) -> CircularDependencyValidationResult:
    """
    Detect a circular prerequisite chain in (course, prerequisite) edges.

    Iterative DFS from every unvisited course, keeping the open path. Reaching
    a course that is still on the open path closes a cycle; the returned path
    runs in traversal order and repeats its first course at the end, so every
    consecutive pair is an input edge. Runs in O(V + E) and keeps all state
    local to the call.
    """
    graph = build_graph(edges_to_prereq_map(edges))
    visited: set[Hashable] = set()

    for start in sorted(graph.nodes):
        if start in visited:
            continue
        visited.add(start)
        path = [start]
        on_path = {start}
        stack = [iter(sorted(graph.prereqs.get(start, set())))]

        while stack:
            nxt = next(stack[-1], _DONE)
            if nxt is _DONE:
                stack.pop()
                on_path.discard(path.pop())
                continue
            if nxt in on_path:
                cycle = path[path.index(nxt):] + [nxt]
                message = "Circular prerequisite chain: " + " -> ".join(str(c) for c in cycle)
                logger.info(message)
                return CircularDependencyValidationResult(
                    is_valid=False,
                    error_message=message,
                    circular_path=cycle,
                )
            if nxt in visited:
                continue
            visited.add(nxt)
            on_path.add(nxt)
            path.append(nxt)
            stack.append(iter(sorted(graph.prereqs.get(nxt, set()))))

    return CircularDependencyValidationResult(is_valid=True)


def topo_sort(graph: PrereqGraph) -> list[Hashable]:
    """Order courses so that every prerequisite precedes its dependents."""
    indegree = {n: 0 for n in graph.nodes}
    for course, reqs in graph.prereqs.items():
        indegree.setdefault(course, 0)
        for req in reqs:
            indegree[course] += 1

    queue = deque(sorted(n for n, d in indegree.items() if d == 0))
    order: list[Hashable] = []

    while queue:
        node = queue.popleft()
        order.append(node)
        for nxt in sorted(graph.edges.get(node, set())):
            indegree[nxt] -= 1
            if indegree[nxt] == 0:
                queue.append(nxt)

    if len(order) != len(indegree):
        edges = [(course, req) for course, reqs in graph.prereqs.items() for req in reqs]
        result = validate_prerequisite_chain(edges)
        raise CircularDependencyError(
            result.error_message or "Cycle detected in prerequisites",
            result.circular_path,
        )

    return order


def prerequisite_levels(graph: PrereqGraph) -> dict[Hashable, int]:
    # Level 0 courses have no prerequisites; otherwise one above the deepest prerequisite.
    levels: dict[Hashable, int] = {}
    for course in topo_sort(graph):
        reqs = graph.prereqs.get(course, set())
        levels[course] = 1 + max(levels[r] for r in reqs) if reqs else 0
    return levels
