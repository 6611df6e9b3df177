# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_chains

from typing import Any, Dict, List

import networkx as nx
from pydantic import TypeAdapter, ValidationError

from coreason_chains.core.exceptions import InvalidChainDefinition
from coreason_chains.core.models import BaseNode, Complexity, LeafNode, RecipeNode, node_children

DEFAULT_LEAF_ESTIMATE_MS = 10_000

_NODE_ADAPTER: TypeAdapter[Any] = TypeAdapter(RecipeNode)


def parse_node(data: Any) -> BaseNode:
    """Validates a raw node tree (dict) into the node model.

    Raises:
        InvalidChainDefinition: If the tree does not match the node schema.
    """
    if isinstance(data, BaseNode):
        return data
    try:
        node: BaseNode = _NODE_ADAPTER.validate_python(data)
    except ValidationError as e:
        problems = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        raise InvalidChainDefinition("Malformed node tree", problems) from e
    return node


class TopologyEngine:
    """Validates node trees and derives their structural metrics."""

    def build_graph(self, root: BaseNode) -> nx.DiGraph:
        """Mirrors a node tree into a NetworkX DiGraph and validates it.

        Node attributes: ``kind``, ``estimate`` (leaf estimate or None).
        Edges point from parent to child and carry the child ``position``.

        Args:
            root: The root node of the tree.

        Returns:
            nx.DiGraph: A validated DiGraph rooted at ``root.id``.

        Raises:
            InvalidChainDefinition: If the tree is malformed.
        """
        graph = nx.DiGraph(root=root.id)
        problems: List[str] = []

        stack: List[tuple[BaseNode, str | None, int]] = [(root, None, 0)]
        while stack:
            node, parent, position = stack.pop()
            kind = getattr(node, "kind")
            if node.id in graph:
                problems.append(f"duplicate node id '{node.id}'")
                continue

            estimate = node.metadata.estimated_time_ms
            graph.add_node(node.id, kind=kind, name=node.name, estimate=estimate)
            if parent is not None:
                graph.add_edge(parent, node.id, position=position)

            children = node_children(node)
            if isinstance(node, LeafNode):
                if not node.recipe_ref.strip():
                    problems.append(f"leaf '{node.id}' has no recipe reference")
            elif kind in ("sequence", "parallel", "group") and not children:
                problems.append(f"{kind} node '{node.id}' has no children")

            for i, child in reversed(list(enumerate(children))):
                stack.append((child, node.id, i))

        if problems:
            raise InvalidChainDefinition("Invalid chain definition", problems)

        if not nx.is_arborescence(graph):
            raise InvalidChainDefinition("Node tree is not a rooted tree")

        return graph

    def validate(self, root: BaseNode) -> None:
        self.build_graph(root)

    def count_nodes(self, graph: nx.DiGraph) -> int:
        return int(graph.number_of_nodes())

    def has_kind(self, graph: nx.DiGraph, kind: str) -> bool:
        return any(data["kind"] == kind for _, data in graph.nodes(data=True))

    def classify(self, graph: nx.DiGraph) -> Complexity:
        """Classifies a tree as simple, moderate or complex.

        Args:
            graph: The DiGraph produced by build_graph.

        Returns:
            Complexity: ``complex`` above 10 nodes or when conditions and
            parallelism are combined, ``moderate`` above 5 nodes or with either
            feature, otherwise ``simple``.
        """
        node_count = self.count_nodes(graph)
        has_conditions = self.has_kind(graph, "condition")
        has_parallel = self.has_kind(graph, "parallel")

        if node_count > 10 or (has_conditions and has_parallel):
            return "complex"
        if node_count > 5 or has_conditions or has_parallel:
            return "moderate"
        return "simple"

    def estimate_duration(self, graph: nx.DiGraph) -> int:
        """Estimates the run time of the tree in milliseconds.

        Parallel nodes are bounded by their slowest branch; every other
        composite sums its children.
        """
        if graph.number_of_nodes() == 0:
            return 0

        estimates: Dict[str, int] = {}
        for node_id in nx.dfs_postorder_nodes(graph, source=graph.graph["root"]):
            data = graph.nodes[node_id]
            child_estimates = [estimates[child] for child in graph.successors(node_id)]
            if data["kind"] == "leaf":
                estimate = data["estimate"]
                estimates[node_id] = DEFAULT_LEAF_ESTIMATE_MS if estimate is None else estimate
            elif data["kind"] == "parallel":
                estimates[node_id] = max(child_estimates, default=0)
            else:
                estimates[node_id] = sum(child_estimates)
        return estimates[graph.graph["root"]]
