from __future__ import annotations

import sys
from pathlib import Path

import matplotlib
import numpy as np
import pytest

matplotlib.use("Agg")


def pytest_configure() -> None:
    src_root = Path(__file__).resolve().parents[1] / "src"
    src_path = str(src_root)
    if src_path not in sys.path:
        sys.path.insert(0, src_path)


@pytest.fixture
def feedback_flows() -> np.ndarray:
    # A -> B 10, B -> C 8, C -> A 2 (loop back to the producer)
    flows = np.zeros((3, 3))
    flows[0, 1] = 10.0
    flows[1, 2] = 8.0
    flows[2, 0] = 2.0
    return flows


@pytest.fixture
def feedback_graph(feedback_flows):
    from ecopath_sankey.graph_builder import build_graph_from_arrays

    return build_graph_from_arrays(feedback_flows, ["A", "B", "C"], [1.0, 2.0, 3.0])
