"""Layered Sankey layout.

Columns come from the node layers; the vertical placement is the classic
weighted relaxation of d3-sankey: nodes are pulled toward the weighted
centre of their neighbours, alternately right-to-left and left-to-right,
and overlaps are resolved after each pass. Link bands are stacked on each
node face in creation order so that they do not swap between relayouts.

The layout does not enforce flow conservation: node height is the larger
of the inflow and outflow, and bands are drawn as given.
"""

import logging
import warnings

from ecopath_sankey.config import SankeyConfig
from ecopath_sankey.errors import DegenerateLayoutWarning
from ecopath_sankey.graph import Node, SankeyGraph

logger = logging.getLogger(__name__)


class SankeyLayout:
    """Positions the nodes and link bands of a ``SankeyGraph``.

    Args:
        config (SankeyConfig, optional): Canvas size, node padding and width,
            number of relaxation iterations.

    Example:
        >>> layout = SankeyLayout(SankeyConfig(width=600, height=300))
        >>> graph = layout.layout(graph)
        >>> layout.move_node(graph, "Cod", 120.0)  # drag
    """

    def __init__(self, config: SankeyConfig | None = None):
        self.config = config or SankeyConfig()

    # ──────────────────────────────────────────────────────────────────────
    # Public API

    def layout(self, graph: SankeyGraph, iterations: int | None = None) -> SankeyGraph:
        """Full layout: x, y, dy of nodes and dy, sy0, ty0 of links."""
        if iterations is None:
            iterations = self.config.iterations

        self._compute_node_links(graph)
        self._compute_node_values(graph)
        columns = self._compute_node_breadths(graph)
        self._compute_node_depths(graph, columns, iterations)
        self._compute_link_depths(graph)

        logger.debug(
            "Layout of %d nodes in %d columns (%d iterations)",
            len(graph.nodes),
            len(columns),
            iterations,
        )
        return graph

    def relayout(self, graph: SankeyGraph) -> SankeyGraph:
        """Recomputes the link bands from the current node positions.

        Nodes are only clamped into the canvas; the relaxation is not rerun,
        so manually placed nodes stay where they are.
        """
        for node in graph.nodes:
            node.y = self.clamp_y(node, node.y)
        self._compute_link_depths(graph)
        return graph

    def move_node(self, graph: SankeyGraph, node, new_y: float) -> SankeyGraph:
        """Moves a node vertically (clamped to the canvas) and relayouts."""
        node = graph.node(node)
        node.y = self.clamp_y(node, new_y)
        return self.relayout(graph)

    def clamp_y(self, node: Node, y: float) -> float:
        """Keeps ``y`` within ``[0, height - dy]``."""
        upper = max(0.0, self.config.height - node.dy)
        return min(max(float(y), 0.0), upper)

    # ──────────────────────────────────────────────────────────────────────
    # Steps

    @staticmethod
    def _compute_node_links(graph):
        for node in graph.nodes:
            node.source_links = []
            node.target_links = []
        for link in graph.links:
            link.source.source_links.append(link)
            link.target.target_links.append(link)

    @staticmethod
    def _compute_node_values(graph):
        for node in graph.nodes:
            node.value = max(
                sum(l.value for l in node.source_links),
                sum(l.value for l in node.target_links),
            )

    def _compute_node_breadths(self, graph):
        """Sets x from the layer and returns the columns, left to right."""
        cfg = self.config
        n_layers = graph.n_layers
        if n_layers <= 1:
            kx = 0.0
        else:
            kx = max(0.0, (cfg.width - cfg.node_width) / (n_layers - 1))

        by_layer = {}
        for node in graph.nodes:
            node.x = node.layer * kx
            by_layer.setdefault(node.layer, []).append(node)
        return [by_layer[k] for k in sorted(by_layer)]

    def _compute_node_depths(self, graph, columns, iterations):
        cfg = self.config

        # 1) Échelle commune flux -> pixels, fixée par la colonne la plus chargée
        ratios = []
        empty = []
        for col in columns:
            total = sum(n.value for n in col)
            if total > 0:
                ratios.append((cfg.height - (len(col) - 1) * cfg.node_padding) / total)
            else:
                empty.append(col[0].layer)

        if empty:
            warnings.warn(
                f"Column(s) {empty} carry no flow: their nodes get zero height.",
                DegenerateLayoutWarning,
            )
        if ratios:
            ky = max(0.0, min(ratios))
            if ky == 0:
                warnings.warn(
                    "Node padding leaves no room for the nodes: zero-height layout.",
                    DegenerateLayoutWarning,
                )
        else:
            ky = 0.0

        # 2) Empilement initial, dans l'ordre d'entrée
        for col in columns:
            y = 0.0
            for node in col:
                node.dy = node.value * ky
                node.y = y
                y += node.dy + cfg.node_padding
        for link in graph.links:
            link.dy = max(0.0, link.value * ky)

        # 3) Relaxation
        self._resolve_collisions(columns)
        alpha = 1.0
        for _ in range(iterations):
            alpha *= 0.99
            self._relax_right_to_left(columns, alpha)
            self._resolve_collisions(columns)
            self._relax_left_to_right(columns, alpha)
            self._resolve_collisions(columns)

    @staticmethod
    def _relax_left_to_right(columns, alpha):
        for col in columns:
            for node in col:
                weight = sum(l.value for l in node.target_links)
                if weight > 0:
                    y = sum(l.source.center * l.value for l in node.target_links) / weight
                    node.y += (y - node.center) * alpha

    @staticmethod
    def _relax_right_to_left(columns, alpha):
        for col in reversed(columns):
            for node in col:
                weight = sum(l.value for l in node.source_links)
                if weight > 0:
                    y = sum(l.target.center * l.value for l in node.source_links) / weight
                    node.y += (y - node.center) * alpha

    def _resolve_collisions(self, columns):
        padding = self.config.node_padding
        height = self.config.height
        for col in columns:
            col.sort(key=lambda n: n.y)

            # Push overlapping nodes down
            y0 = 0.0
            for node in col:
                dy = y0 - node.y
                if dy > 0:
                    node.y += dy
                y0 = node.y + node.dy + padding

            # Bottom node out of the canvas: push back up
            dy = y0 - padding - height
            if dy > 0:
                last = col[-1]
                last.y -= dy
                y0 = last.y
                for node in reversed(col[:-1]):
                    dy = node.y + node.dy + padding - y0
                    if dy > 0:
                        node.y -= dy
                    y0 = node.y

            for node in col:
                node.y = self.clamp_y(node, node.y)

    def _compute_link_depths(self, graph):
        for node in graph.nodes:
            if self.config.sort_links_by_position:
                node.source_links.sort(key=lambda l: (l.target.y, l.index))
                node.target_links.sort(key=lambda l: (l.source.y, l.index))
            else:
                node.source_links.sort(key=lambda l: l.index)
                node.target_links.sort(key=lambda l: l.index)

        for node in graph.nodes:
            sy = 0.0
            for link in node.source_links:
                link.sy0 = sy
                sy += link.dy
            ty = 0.0
            for link in node.target_links:
                link.ty0 = ty
                ty += link.dy
