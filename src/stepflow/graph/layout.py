"""Tree layout for workflow graphs without explicit positions."""

from typing import Dict, List, Set, Tuple
from collections import deque
from loguru import logger

from .models import Node, Edge


Position = Tuple[float, float]


class LayoutEngine:
    """Subtree-weighted tree layout.

    Depth grows to the right, sibling subtrees are stacked vertically in
    bands proportional to their weight (number of leaves below them), so two
    sibling subtrees never overlap. The same graph always produces the same
    positions.
    """

    def __init__(
        self,
        x_spacing: float = 280,
        y_spacing: float = 150,
        start_x: float = 100,
        start_y: float = 100
    ):
        """Initialize the layout engine.

        Args:
            x_spacing: Horizontal distance between depth levels
            y_spacing: Vertical space for a subtree of weight 1
            start_x: X of depth 0
            start_y: Top of the first band
        """
        self.x_spacing = x_spacing
        self.y_spacing = y_spacing
        self.start_x = start_x
        self.start_y = start_y

    def layout(self, nodes: List[Node], edges: List[Edge]) -> Dict[str, Position]:
        """Compute positions for all nodes.

        Args:
            nodes: Nodes to place
            edges: Edges between them

        Returns:
            Mapping of node id to (x, y)
        """
        if not nodes:
            return {}

        node_ids = [node.id for node in nodes]
        known = set(node_ids)
        children: Dict[str, List[str]] = {node_id: [] for node_id in node_ids}
        has_parent: Set[str] = set()

        for edge in edges:
            if edge.source in known and edge.target in known:
                children[edge.source].append(edge.target)
                has_parent.add(edge.target)

        roots = [node_id for node_id in node_ids if node_id not in has_parent]
        if not roots:
            # Every node sits on a cycle
            roots = [node_ids[0]]

        depths = self._depths(roots, children, max_depth=len(node_ids) - 1)
        weights: Dict[str, int] = {}
        for node_id in node_ids:
            self._weight(node_id, children, weights, set())

        positions: Dict[str, Position] = {}
        current_y = self.start_y
        for root in roots:
            band = weights[root] * self.y_spacing
            self._place(root, current_y, current_y + band, children, depths, weights, positions)
            current_y += band

        # Nodes no root reaches
        for node_id in node_ids:
            if node_id not in positions:
                positions[node_id] = (self.start_x, current_y)
                current_y += self.y_spacing

        logger.debug(f"[LAYOUT] Placed {len(positions)} nodes from {len(roots)} roots")
        return positions

    def apply(self, nodes: List[Node], edges: List[Edge]) -> List[Node]:
        """Compute positions and write them onto the nodes."""
        positions = self.layout(nodes, edges)
        for node in nodes:
            node.position = positions.get(node.id, node.position)
        return nodes

    @staticmethod
    def _depths(roots: List[str], children: Dict[str, List[str]], max_depth: int) -> Dict[str, int]:
        """BFS depth, keeping the deepest level a node is reached at."""
        depths = {root: 0 for root in roots}
        queue = deque((root, 0) for root in roots)

        while queue:
            node_id, depth = queue.popleft()
            for child in children[node_id]:
                new_depth = depth + 1
                # No simple path is longer than max_depth; stops cycles
                if new_depth > max_depth:
                    continue
                if child not in depths or new_depth > depths[child]:
                    depths[child] = new_depth
                    queue.append((child, new_depth))

        return depths

    def _weight(
        self,
        node_id: str,
        children: Dict[str, List[str]],
        weights: Dict[str, int],
        on_path: Set[str]
    ) -> int:
        """Number of leaves below a node (at least 1)."""
        if node_id in weights:
            return weights[node_id]
        if node_id in on_path:
            return 0  # Back edge

        on_path.add(node_id)
        total = sum(self._weight(child, children, weights, on_path) for child in children[node_id])
        on_path.discard(node_id)

        weights[node_id] = max(1, total)
        return weights[node_id]

    def _place(
        self,
        node_id: str,
        y_start: float,
        y_end: float,
        children: Dict[str, List[str]],
        depths: Dict[str, int],
        weights: Dict[str, int],
        positions: Dict[str, Position]
    ) -> None:
        if node_id in positions:
            return

        depth = depths.get(node_id, 0)
        positions[node_id] = (self.start_x + depth * self.x_spacing, y_start + (y_end - y_start) / 2)

        span = y_end - y_start
        node_weight = weights[node_id]
        current_y = y_start
        for child in children[node_id]:
            child_span = weights[child] / node_weight * span
            self._place(child, current_y, current_y + child_span, children, depths, weights, positions)
            current_y += child_span
