"""
Resolution of a requested task into an execution plan.
"""

from typing import TYPE_CHECKING

import networkx as nx

from .exceptions import CycleDetectedError, InvalidReferenceError
from .plan import ExecutionPlan
from .registry import TaskRegistry
from .topology import Topology

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Iterator

_VISITING = 1
_DONE = 2


def _post_order(registry: TaskRegistry, requested: str) -> list[str]:
    # raises UnknownTaskError for the requested name itself
    registry.get(requested)

    marks: dict[str, int] = {requested: _VISITING}
    order: list[str] = []
    # the stack doubles as the current path, for cycle reporting
    stack: list[tuple[str, "Iterator[str]"]] = [
        (requested, iter(registry.get(requested).prerequisites))
    ]

    while stack:
        name, prerequisites = stack[-1]

        for prerequisite in prerequisites:
            if prerequisite not in registry:
                raise InvalidReferenceError(name, prerequisite)

            mark = marks.get(prerequisite)
            if mark == _VISITING:
                path = [visiting for visiting, _ in stack]
                cycle = path[path.index(prerequisite) :]
                raise CycleDetectedError([*cycle, prerequisite])
            elif mark is None:
                marks[prerequisite] = _VISITING
                stack.append(
                    (prerequisite, iter(registry.get(prerequisite).prerequisites))
                )
                break
        else:
            stack.pop()
            marks[name] = _DONE
            order.append(name)

    return order


def resolve_topology(registry: TaskRegistry, requested: str) -> Topology:
    order = _post_order(registry, requested)

    digraph = nx.DiGraph()
    digraph.add_nodes_from(order)
    for name in order:
        for prerequisite in registry.get(name).prerequisites:
            digraph.add_edge(prerequisite, name)

    return Topology(digraph=digraph, order=order)


def resolve(registry: TaskRegistry, requested: str) -> ExecutionPlan:
    """
    Expand `requested` into its transitive prerequisite closure, each task once.

    Unknown names and cycles are reported here, before anything executes.
    """
    topology = resolve_topology(registry, requested)

    return ExecutionPlan(
        requested=requested, order=topology.order, waves=topology.waves()
    )
