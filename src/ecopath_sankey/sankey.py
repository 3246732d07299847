import logging

import matplotlib
import numpy as np
import plotly.graph_objects as go
from matplotlib.colors import to_hex, to_rgb

from ecopath_sankey.config import SankeyConfig
from ecopath_sankey.graph import SankeyGraph
from ecopath_sankey.layout import SankeyLayout
from ecopath_sankey.routing import ReversibleLinkRouter

logger = logging.getLogger(__name__)

UNIT_FLUX = "t ww/km²/yr"
UNIT_MASS = "t ww/km²"
UNIT_RATE = "/yr"


def color_key(name: str) -> str:
    """First word of a node name: 'Cod juvenile' and 'Cod adult' share a colour."""
    return str(name).split(" ")[0]


def get_unique_colors(labels, fixed_colors_map=None):
    """Colour of every label, derived once from its first word.

    Args:
        labels (list of str): Node names.
        fixed_colors_map (dict, optional): Colours imposed for some keys
            (first words), e.g. ``{"Detritus": "sienna"}``.

    Returns:
        dict: label -> hex colour.
    """
    fixed_colors_map = fixed_colors_map or {}
    keys_to_color = sorted({color_key(l) for l in labels} - set(fixed_colors_map))

    # 'tab20' au-delà de 20 catégories se répète : on passe à 'hsv'
    N = len(keys_to_color)
    colormap_name = "hsv" if N > 20 else "tab20"
    cmap = matplotlib.colormaps[colormap_name]

    all_colors = {k: to_hex(cmap(i / max(N, 1))) for i, k in enumerate(keys_to_color)}
    all_colors.update({k: to_hex(c) for k, c in fixed_colors_map.items()})

    return {l: all_colors[color_key(l)] for l in labels}


def darker(color, k=2):
    """Same rule as d3.rgb().darker(k)."""
    factor = 0.7**k
    return to_hex(tuple(c * factor for c in to_rgb(color)))


def _fmt(v, unit=""):
    if v is None or (isinstance(v, float) and np.isnan(v)):
        return "n/a"
    return f"{v:.3g} {unit}".rstrip()


class InteractiveView:
    """Laid-out, routed Sankey diagram and its interaction contract.

    The view owns the layout state of ``graph``: node ``y`` changes only
    through ``on_node_drag``; hover and double-click only change display
    state (opacity, hidden links).

    Args:
        graph (SankeyGraph): Output of the graph builder.
        config (SankeyConfig, optional): Canvas and style settings.
        fixed_colors (dict, optional): Colours imposed per first word of name.
        unit (str): Flux unit used in tooltips.
    """

    def __init__(
        self,
        graph: SankeyGraph,
        config: SankeyConfig | None = None,
        fixed_colors: dict | None = None,
        unit: str = UNIT_FLUX,
    ):
        self.graph = graph
        self.config = config or SankeyConfig()
        self.unit = unit
        self.sankey_layout = SankeyLayout(self.config)
        self.router = ReversibleLinkRouter(self.config)

        self.sankey_layout.layout(graph)

        colors = get_unique_colors([n.name for n in graph.nodes], fixed_colors)
        for node in graph.nodes:
            node.color = colors[node.name]

        self.link_opacity = {l.index: self.config.low_opacity for l in graph.links}
        self.hidden_links = set()
        self.routes = self.router.routes(graph)

    # ──────────────────────────────────────────────────────────────────────
    # Interaction

    def on_node_drag(self, node, new_y: float):
        """Moves a node vertically, relayouts the bands and reroutes every link."""
        node = self.graph.node(node)
        self.sankey_layout.move_node(self.graph, node, new_y)
        self.routes = self.router.routes(self.graph)
        logger.debug("Dragged %s to y=%.1f", node.name, node.y)
        return self.routes

    def _touching(self, node):
        return [l for l in self.graph.links if l.source is node or l.target is node]

    def on_node_hover(self, node):
        node = self.graph.node(node)
        for link in self._touching(node):
            self.link_opacity[link.index] = self.config.high_opacity

    def on_node_leave(self, node):
        node = self.graph.node(node)
        for link in self._touching(node):
            self.link_opacity[link.index] = self.config.low_opacity

    def on_node_double_click(self, node):
        """Toggles the visibility of every link not touching ``node``."""
        node = self.graph.node(node)
        others = {
            l.index for l in self.graph.links if l.source is not node and l.target is not node
        }
        self.hidden_links ^= others

    def visible_links(self):
        return [l for l in self.graph.links if l.index not in self.hidden_links]

    # ──────────────────────────────────────────────────────────────────────
    # Drawing

    def node_hover_text(self, node):
        if node.is_fleet:
            return f"{node.name}<br>Fleet<br>Total catch: {_fmt(node.value)}"
        return (
            f"{node.name}<br>B: {_fmt(node.B, UNIT_MASS)}"
            f"<br>PB: {_fmt(node.PB, UNIT_RATE)}"
            f"<br>QB: {_fmt(node.QB, UNIT_RATE)}"
            f"<br>EE: {_fmt(node.EE)}"
            f"<br>TL: {_fmt(node.tl)}"
        )

    def link_hover_text(self, link):
        return f"{link.source.name} → {link.target.name}<br>{_fmt(link.Q, self.unit)}"

    def trophic_axis(self):
        """Tick positions and labels of the trophic-level axis under the plot.

        Ticks every 0.5 TL, interpolated between the columns of the groups
        so that a tick falls on the centre of the nodes of that level.
        """
        anchors = sorted(
            {
                (n.tl_rounded, n.x + self.config.node_width / 2)
                for n in self.graph.nodes
                if not n.is_fleet and n.tl_rounded is not None
            }
        )
        if not anchors:
            return [], []
        levels = [tl for tl, _ in anchors]
        xs = [x for _, x in anchors]
        tlmin, tlmax = levels[0], levels[-1]
        if tlmax == tlmin:
            return [xs[0]], [f"{tlmin:g}"]
        ticks = np.arange(np.ceil(tlmin * 2) / 2, tlmax + 1e-9, 0.5)
        tickvals = [float(v) for v in np.interp(ticks, levels, xs)]
        return tickvals, [f"{t:g}" for t in ticks]

    def figure(self):
        """Plotly figure of the current state (positions, opacity, hidden links)."""
        cfg = self.config
        nw = cfg.node_width
        ext = self.router.curve_extension
        routes = {r.link_index: r for r in self.routes}

        shapes = []
        # Liens dessinés du plus large au plus fin
        for link in sorted(self.visible_links(), key=lambda l: -l.dy):
            for segment in routes[link.index].segments:
                if segment.is_empty:
                    continue
                shapes.append(
                    dict(
                        type="path",
                        path=segment.d,
                        fillcolor=link.source.color,
                        opacity=self.link_opacity[link.index],
                        line=dict(width=0),
                        layer="below",
                    )
                )
        for node in self.graph.nodes:
            shapes.append(
                dict(
                    type="rect",
                    x0=node.x,
                    x1=node.x + nw,
                    y0=node.y,
                    y1=node.y + node.dy,
                    fillcolor=node.color,
                    line=dict(color=darker(node.color), width=1),
                )
            )

        # Survol : marqueurs invisibles au centre des noeuds et des liens
        node_trace = go.Scatter(
            x=[n.x + nw / 2 for n in self.graph.nodes],
            y=[n.center for n in self.graph.nodes],
            mode="markers",
            marker=dict(size=max(nw, 6), opacity=0),
            customdata=[self.node_hover_text(n) for n in self.graph.nodes],
            hovertemplate="%{customdata}<extra></extra>",
            name="nodes",
        )
        link_points = [self._link_anchor(routes[l.index], l) for l in self.visible_links()]
        link_trace = go.Scatter(
            x=[p[0] for p in link_points],
            y=[p[1] for p in link_points],
            mode="markers",
            marker=dict(size=6, opacity=0),
            customdata=[self.link_hover_text(l) for l in self.visible_links()],
            hovertemplate="%{customdata}<extra></extra>",
            name="links",
        )

        annotations = []
        for node in self.graph.nodes:
            left = node.x < cfg.width / 2
            annotations.append(
                dict(
                    x=node.x + nw + 6 if left else node.x - 6,
                    y=node.center,
                    text=node.name,
                    showarrow=False,
                    xanchor="left" if left else "right",
                    font=dict(size=11),
                )
            )

        tickvals, ticktext = self.trophic_axis()
        fig = go.Figure(data=[link_trace, node_trace])
        fig.update_layout(
            shapes=shapes,
            annotations=annotations,
            showlegend=False,
            width=cfg.outer_width + 2 * ext,
            height=cfg.outer_height,
            margin=dict(
                t=cfg.margin.top, r=cfg.margin.right, b=cfg.margin.bottom, l=cfg.margin.left
            ),
            plot_bgcolor="rgba(0,0,0,0)",
            hovermode="closest",
        )
        fig.update_xaxes(
            range=[-ext, cfg.width + ext],
            tickmode="array",
            tickvals=tickvals,
            ticktext=ticktext,
            title="Trophic level",
            showgrid=False,
            zeroline=False,
        )
        fig.update_yaxes(
            range=[cfg.height, 0], showticklabels=False, showgrid=False, zeroline=False
        )
        return fig

    @staticmethod
    def _link_anchor(route, link):
        """A point inside the bridge of a link, for its hover marker."""
        (x0, y0), = route.bridge.commands[0][1]
        x1, y1 = route.bridge.commands[1][1][-1]
        return (x0 + x1) / 2, (y0 + y1) / 2 + link.dy / 2
