from typing import TYPE_CHECKING

from networkx import generate_network_text, topological_generations

if TYPE_CHECKING:  # pragma: no cover
    from networkx import DiGraph


class Topology:
    def __init__(self, *, digraph: "DiGraph", order: list[str]) -> None:
        self.digraph = digraph
        self.order = order

    def waves(self) -> list[list[str]]:
        """
        Partition the plan into waves: wave 0 holds tasks without prerequisites,
        wave k the tasks whose prerequisites all sit in earlier waves. Members are
        sorted by post-order position so the partition is stable.
        """
        position = {name: i for i, name in enumerate(self.order)}
        return [
            sorted(generation, key=position.__getitem__)
            for generation in topological_generations(self.digraph)
        ]

    def __str__(self) -> str:
        return "\n".join(generate_network_text(self.digraph, vertical_chains=True))
