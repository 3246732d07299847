import pandas as pd

from ecopath_sankey.food_web import CONSUMER, DETRITUS, PRODUCER, FlowMatrix, FoodWebModel

# Petit réseau trophique côtier, valeurs indicatives (t ww/km², /an)
GROUPS = pd.DataFrame(
    [
        ["Phytoplankton", 1.0, 25.0, 120.0, None, 0.6, PRODUCER],
        ["Detritus", 1.0, 100.0, None, None, 0.4, DETRITUS],
        ["Zooplankton", 2.1, 20.0, 30.0, 100.0, 0.8, CONSUMER],
        ["Benthos", 2.2, 40.0, 2.5, 10.0, 0.5, CONSUMER],
        ["Small pelagics", 3.1, 15.0, 1.2, 9.0, 0.9, CONSUMER],
        ["Squid", 3.5, 2.0, 3.0, 15.0, 0.95, CONSUMER],
        ["Cod", 3.9, 3.0, 0.8, 3.5, 0.7, CONSUMER],
        ["Seals", 4.3, 0.2, 0.1, 25.0, 0.05, CONSUMER],
    ],
    columns=["name", "TL", "B", "PB", "QB", "EE", "type"],
).set_index("name")

FLEETS = ["Trawlers", "Seiners"]

# (proie, prédateur ou flottille, flux)
FLOWS = [
    ("Phytoplankton", "Zooplankton", 120.0),
    ("Phytoplankton", "Benthos", 20.0),
    ("Phytoplankton", "Detritus", 50.0),
    ("Detritus", "Benthos", 60.0),
    ("Detritus", "Zooplankton", 15.0),
    ("Zooplankton", "Small pelagics", 40.0),
    ("Zooplankton", "Squid", 8.0),
    ("Zooplankton", "Detritus", 30.0),
    ("Benthos", "Cod", 12.0),
    ("Benthos", "Small pelagics", 5.0),
    ("Small pelagics", "Squid", 6.0),
    ("Small pelagics", "Cod", 10.0),
    ("Small pelagics", "Seals", 3.0),
    ("Squid", "Cod", 4.0),
    ("Squid", "Seals", 0.8),
    ("Cod", "Squid", 1.5),
    ("Cod", "Seals", 1.2),
    ("Small pelagics", "Seiners", 5.0),
    ("Cod", "Trawlers", 3.0),
    ("Squid", "Trawlers", 0.5),
    ("Benthos", "Trawlers", 1.0),
]


def demo_model():
    """Small coastal food web with a predation loop (cod <-> squid)."""
    flows = FlowMatrix(list(GROUPS.index) + FLEETS)
    for source, target, value in FLOWS:
        flows.set_flow(source, target, value)
    return FoodWebModel(GROUPS, FLEETS, flows.adjacency_matrix)
