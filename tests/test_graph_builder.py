import warnings

import numpy as np
import pandas as pd
import pytest

from ecopath_sankey.config import BuilderOptions
from ecopath_sankey.demo import demo_model
from ecopath_sankey.errors import (
    DegenerateLayoutWarning,
    DetritusDisplayWarning,
    DisplayShiftWarning,
    ShapeError,
)
from ecopath_sankey.graph_builder import (
    assign_layers,
    build_graph,
    build_graph_from_arrays,
    normalize_values,
)


def test_feedback_loop_layers(feedback_graph) -> None:
    layers = {n.name: n.layer for n in feedback_graph.nodes}
    assert layers == {"A": 0, "B": 1, "C": 2}

    pairs = [(l.source.name, l.target.name, l.value) for l in feedback_graph.links]
    assert pairs == [("A", "B", 10.0), ("B", "C", 8.0), ("C", "A", 2.0)]
    assert not feedback_graph.shifted


def test_negative_flow_is_shifted_uniformly() -> None:
    flows = np.zeros((3, 3))
    flows[0, 1] = 10.0
    flows[1, 2] = 20.0
    flows[0, 2] = 30.0
    flows[2, 0] = -5.0

    with pytest.warns(DisplayShiftWarning):
        graph = build_graph_from_arrays(flows, ["A", "B", "C"], [1.0, 2.0, 3.0])

    values = {(l.source.name, l.target.name): l.value for l in graph.links}
    assert min(values.values()) == pytest.approx(0.01 * (30 - (-5)))
    assert values[("C", "A")] == pytest.approx(0.35)
    assert values[("A", "B")] == pytest.approx(10 + 5 + 0.35)
    assert graph.shifted
    # Q keeps the raw flux
    assert graph.link("C", "A").Q == -5.0


def test_all_equal_negative_values_degenerate_to_zero() -> None:
    with pytest.warns(DisplayShiftWarning):
        values, shifted = normalize_values([-3.0, -3.0])
    assert shifted
    assert values.tolist() == [0.0, 0.0]


def test_positive_values_untouched() -> None:
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        values, shifted = normalize_values([0.0, 1.5, 2.0])
    assert not shifted
    assert values.tolist() == [0.0, 1.5, 2.0]


@pytest.mark.filterwarnings("ignore::ecopath_sankey.errors.DisplayShiftWarning")
@pytest.mark.filterwarnings("ignore::ecopath_sankey.errors.DegenerateLayoutWarning")
@pytest.mark.parametrize("seed", range(20))
def test_values_non_negative_for_random_signed_matrices(seed) -> None:
    rng = np.random.default_rng(seed)
    n = 7
    flows = rng.normal(scale=10.0, size=(n, n)) * (rng.random((n, n)) < 0.5)
    tl = rng.uniform(1.0, 4.5, size=n)

    graph = build_graph_from_arrays(flows, [f"g{i}" for i in range(n)], tl)

    assert all(l.value >= 0 for l in graph.links)
    assert len(graph.links) == np.count_nonzero(flows)


def test_single_column_input() -> None:
    flows = np.array([[0.0, 4.0, 0.0], [0.0, 0.0, 2.0], [1.0, 0.0, 0.0]])

    with pytest.warns(DegenerateLayoutWarning):
        graph = build_graph_from_arrays(flows, ["x", "y", "z"], [2.01, 2.04, 1.98])

    assert [n.layer for n in graph.nodes] == [0, 0, 0]
    assert {n.tl_rounded for n in graph.nodes} == {2.0}


@pytest.mark.parametrize("seed", range(10))
def test_layers_are_monotonic_in_trophic_level(seed) -> None:
    rng = np.random.default_rng(seed)
    tl = rng.uniform(1.0, 5.0, size=15)
    is_fleet = np.zeros(15, dtype=bool)

    layer, tl_rounded = assign_layers(tl, is_fleet, round_to=0.25)

    assert layer.min() == 0
    for a in range(15):
        for b in range(15):
            if tl_rounded[a] > tl_rounded[b]:
                assert layer[a] > layer[b]


def test_layers_use_smallest_gap_between_levels() -> None:
    layer, tl_rounded = assign_layers([1.0, 1.5, 3.0, 3.04], [False] * 4, round_to=0.1)
    # levels 1.0, 1.5, 3.0 -> smallest gap 0.5
    assert layer.tolist() == [0, 1, 4, 4]
    assert tl_rounded.tolist() == [1.0, 1.5, 3.0, 3.0]


def test_fleets_get_rightmost_layer() -> None:
    layer, tl_rounded = assign_layers(
        [np.nan, 1.0, 2.0, 3.0], [True, False, False, False], round_to=0.1
    )
    assert layer.tolist() == [3, 0, 1, 2]
    assert tl_rounded[0] == 3.0


def test_invalid_round_to() -> None:
    with pytest.raises(ValueError):
        assign_layers([1.0, 2.0], [False, False], round_to=0)
    with pytest.raises(ValueError):
        BuilderOptions(round_to=-0.1)


def test_demo_graph_order_and_fleets() -> None:
    graph = build_graph(demo_model())

    names = [n.name for n in graph.nodes]
    assert names[:2] == ["Trawlers", "Seiners"]
    assert names[2:] == [
        "Phytoplankton",
        "Detritus",
        "Zooplankton",
        "Benthos",
        "Small pelagics",
        "Squid",
        "Cod",
        "Seals",
    ]

    trawlers = graph.node("Trawlers")
    seals = graph.node("Seals")
    assert trawlers.is_fleet
    assert trawlers.tl is None and trawlers.B is None
    assert trawlers.layer == max(n.layer for n in graph.nodes) == seals.layer + 1
    assert trawlers.tl_rounded == seals.tl_rounded == 4.3

    # predation loop: cod eat squid, squid eat small cod
    assert graph.node("Cod").layer > graph.node("Squid").layer
    assert graph.link("Cod", "Squid").value == 1.5


def test_detritus_flows_hidden_by_default() -> None:
    graph = build_graph(demo_model())
    assert all(l.target.name != "Detritus" for l in graph.links)
    # flows out of detritus are kept
    assert graph.link("Detritus", "Benthos").value == 60.0


def test_detritus_flows_shown_on_request() -> None:
    with pytest.warns(DetritusDisplayWarning):
        graph = build_graph(demo_model(), BuilderOptions(show_detritus=True))
    assert graph.link("Zooplankton", "Detritus").Q == 30.0


def test_groups_sorted_by_trophic_level() -> None:
    groups = pd.DataFrame(
        {"TL": [3.0, 1.0, 2.0], "B": [1.0, 2.0, 3.0], "PB": 1.0, "QB": 1.0, "EE": 0.5},
        index=["top", "base", "mid"],
    )
    flows = np.zeros((3, 3))
    flows[1, 2] = 5.0  # base -> mid
    flows[2, 0] = 2.0  # mid -> top
    graph = build_graph_from_arrays(flows, groups.index, groups["TL"], attributes=groups)

    assert [n.name for n in graph.nodes] == ["base", "mid", "top"]
    assert [n.B for n in graph.nodes] == [2.0, 3.0, 1.0]
    assert graph.link("base", "mid").Q == 5.0
    assert graph.link("mid", "top").Q == 2.0


def test_linkscale_only_changes_display_value() -> None:
    flows = np.zeros((2, 2))
    flows[0, 1] = 16.0
    graph = build_graph_from_arrays(
        flows, ["a", "b"], [1.0, 2.0], options=BuilderOptions(linkscale=np.sqrt)
    )
    link = graph.link("a", "b")
    assert link.value == 4.0
    assert link.Q == 16.0


def test_linkscale_must_return_finite_values() -> None:
    flows = np.zeros((2, 2))
    flows[0, 1] = 1.0
    bad = BuilderOptions(linkscale=lambda q: np.full_like(q, np.nan))
    with pytest.raises(ValueError):
        build_graph_from_arrays(flows, ["a", "b"], [1.0, 2.0], options=bad)


def test_all_zero_matrix_gives_edge_free_graph() -> None:
    graph = build_graph_from_arrays(np.zeros((3, 3)), ["a", "b", "c"], [1.0, 2.0, 3.0])
    assert len(graph.nodes) == 3
    assert graph.links == []


def test_shape_errors() -> None:
    with pytest.raises(ShapeError):
        build_graph_from_arrays(np.zeros((3, 2)), ["a", "b", "c"], [1.0, 2.0, 3.0])
    with pytest.raises(ShapeError):
        build_graph_from_arrays(np.zeros((4, 4)), ["a", "b", "c"], [1.0, 2.0, 3.0])
    with pytest.raises(ShapeError):
        build_graph_from_arrays(np.zeros((3, 3)), ["a", "b", "c"], [1.0, 2.0])
    with pytest.raises(ShapeError):
        build_graph_from_arrays(
            np.zeros((3, 3)), ["a", "b", "c"], [1.0, 2.0, 3.0], attributes={"B": [1.0, 2.0]}
        )


def test_fleets_right_of_a_single_group_column() -> None:
    with pytest.warns(DegenerateLayoutWarning):
        layer, tl_rounded = assign_layers([np.nan, 2.0, 2.04], [True, False, False])
    assert layer.tolist() == [1, 0, 0]
    assert tl_rounded.tolist() == [2.0, 2.0, 2.0]
