import numpy as np
import plotly.graph_objects as go
import pytest
from matplotlib.colors import to_hex

from ecopath_sankey.config import SankeyConfig
from ecopath_sankey.demo import demo_model
from ecopath_sankey.graph_builder import build_graph, build_graph_from_arrays
from ecopath_sankey.sankey import InteractiveView, darker, get_unique_colors


@pytest.fixture
def view():
    return InteractiveView(build_graph(demo_model()), SankeyConfig(width=800, height=400))


def test_colors_derived_from_first_word() -> None:
    colors = get_unique_colors(["Cod adult", "Cod juvenile", "Seals"])
    assert colors["Cod adult"] == colors["Cod juvenile"]
    assert colors["Cod adult"] != colors["Seals"]

    fixed = get_unique_colors(["Detritus", "Seals"], {"Detritus": "sienna"})
    assert fixed["Detritus"] == to_hex("sienna")


def test_darker_matches_d3_rule() -> None:
    assert darker("#ffffff", 2) == to_hex((0.49, 0.49, 0.49))


def test_view_colors_nodes_once(view) -> None:
    assert all(n.color and n.color.startswith("#") for n in view.graph.nodes)


def test_drag_is_clamped_and_reroutes(view) -> None:
    cod = view.graph.node("Cod")
    link = view.graph.link("Cod", "Squid")

    view.on_node_drag(cod, -50)
    assert cod.y == 0.0
    before = view.routes[link.index]

    routes = view.on_node_drag("Cod", 1e6)
    assert cod.y == pytest.approx(view.config.height - cod.dy)
    assert routes is view.routes
    assert view.routes[link.index] != before


def test_drag_only_moves_dragged_node(view) -> None:
    positions = {n.name: n.y for n in view.graph.nodes}
    view.on_node_drag("Seals", 10.0)
    for node in view.graph.nodes:
        if node.name != "Seals":
            assert node.y == positions[node.name]


def test_hover_changes_opacity_of_touching_links(view) -> None:
    cfg = view.config
    touching = {l.index for l in view.graph.links if "Squid" in (l.source.name, l.target.name)}

    view.on_node_hover("Squid")
    for link in view.graph.links:
        expected = cfg.high_opacity if link.index in touching else cfg.low_opacity
        assert view.link_opacity[link.index] == expected

    view.on_node_leave("Squid")
    assert set(view.link_opacity.values()) == {cfg.low_opacity}


def test_double_click_toggles_other_links(view) -> None:
    view.on_node_double_click("Cod")
    visible = view.visible_links()
    assert visible
    assert all("Cod" in (l.source.name, l.target.name) for l in visible)

    view.on_node_double_click("Cod")
    assert view.hidden_links == set()


def test_figure_draws_nodes_and_segments(view) -> None:
    fig = view.figure()
    assert isinstance(fig, go.Figure)

    n_segments = sum(
        1 for r in view.routes for s in r.segments if not s.is_empty
    )
    shapes = fig.layout.shapes
    assert len(shapes) == n_segments + len(view.graph.nodes)
    assert sum(1 for s in shapes if s.type == "rect") == len(view.graph.nodes)
    assert list(fig.layout.yaxis.range) == [view.config.height, 0]


def test_figure_skips_hidden_links(view) -> None:
    view.on_node_double_click("Seals")
    fig = view.figure()
    paths = [s for s in fig.layout.shapes if s.type == "path"]
    n_segments = sum(
        1
        for l in view.visible_links()
        for s in view.routes[l.index].segments
        if not s.is_empty
    )
    assert len(paths) == n_segments


def test_hover_texts(view) -> None:
    cod = view.graph.node("Cod")
    assert "B: 3 t ww/km²" in view.node_hover_text(cod)
    assert "TL: 3.9" in view.node_hover_text(cod)
    assert "Fleet" in view.node_hover_text(view.graph.node("Trawlers"))

    link = view.graph.link("Cod", "Squid")
    assert view.link_hover_text(link) == "Cod → Squid<br>1.5 t ww/km²/yr"


def test_trophic_axis_spans_width(view) -> None:
    tickvals, ticktext = view.trophic_axis()
    assert ticktext[0] == "1"
    assert tickvals[0] == view.config.node_width / 2
    assert all(0.0 <= v <= view.config.width for v in tickvals)


def test_trophic_ticks_fall_on_node_columns() -> None:
    # 1.3 is not a multiple of the 0.2 gap: columns are not linear in TL
    flows = np.zeros((3, 3))
    flows[0, 1] = 5.0
    flows[1, 2] = 2.0
    graph = build_graph_from_arrays(flows, ["a", "b", "c"], [1.0, 1.3, 1.5])
    view = InteractiveView(graph)

    tickvals, ticktext = view.trophic_axis()
    half = view.config.node_width / 2
    ticks = dict(zip(ticktext, tickvals))
    assert ticks["1"] == pytest.approx(graph.node("a").x + half)
    assert ticks["1.5"] == pytest.approx(graph.node("c").x + half)
