from typing import Iterable, List, Set
import networkx as nx

from .memory import Handle
from .tape import TapeEntry


class GradientGraph:
    """Bipartite view of a slice of the tape: handle -> entry -> handle."""

    def __init__(self, entries: Iterable[TapeEntry]):
        self.entries: List[TapeEntry] = list(entries)
        self.graph = nx.DiGraph()
        for entry in self.entries:
            self.graph.add_node(entry, op=entry.op_id)
            for handle in entry.inputs:
                self.graph.add_edge(handle, entry)
            for handle in entry.outputs:
                self.graph.add_edge(entry, handle)

    def upstream_of(self, handles: Iterable[Handle]) -> Set:
        nodes: Set = set()
        for handle in handles:
            if handle in self.graph:
                nodes |= nx.ancestors(self.graph, handle)
        return nodes

    def downstream_of(self, handles: Iterable[Handle]) -> Set:
        nodes: Set = set()
        for handle in handles:
            if handle in self.graph:
                nodes |= nx.descendants(self.graph, handle)
        return nodes

    def relevant_entries(self, outputs: Iterable[Handle], targets: Iterable[Handle]) -> List[TapeEntry]:
        """Entries on some path from a target to an output, in recording order."""
        upstream = self.upstream_of(outputs)
        downstream = self.downstream_of(targets)
        return [e for e in self.entries if e in upstream and e in downstream]
