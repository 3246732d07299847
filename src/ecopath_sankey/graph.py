import math
from dataclasses import dataclass, field

from ecopath_sankey.errors import ShapeError


def _nullable(v):
    """JSON-friendly float: NaN and None become None."""
    if v is None:
        return None
    v = float(v)
    return None if math.isnan(v) else v


@dataclass(eq=False)
class Node:
    """A functional group or fleet of the food web.

    Identity fields (index, name, layer, trophic levels, Ecopath attributes)
    are fixed by the graph builder; ``x``, ``y``, ``dy``, ``value`` and the
    link slots are rewritten by each layout pass.
    """

    index: int
    name: str
    layer: int = 0
    tl: float | None = None  # TLf
    tl_rounded: float | None = None  # TLr
    is_fleet: bool = False
    B: float | None = None
    PB: float | None = None
    QB: float | None = None
    EE: float | None = None

    x: float = 0.0
    y: float = 0.0
    dy: float = 0.0
    value: float = 0.0
    color: str | None = None

    source_links: list = field(default_factory=list, repr=False)
    target_links: list = field(default_factory=list, repr=False)

    @property
    def center(self) -> float:
        return self.y + self.dy / 2

    def to_dict(self) -> dict:
        return {
            "node": self.index,
            "name": self.name,
            "layer": int(self.layer),
            "B": _nullable(self.B),
            "PB": _nullable(self.PB),
            "QB": _nullable(self.QB),
            "EE": _nullable(self.EE),
            "TLf": _nullable(self.tl),
            "TLr": _nullable(self.tl_rounded),
        }


@dataclass(eq=False)
class Link:
    """A biomass flux between two nodes.

    ``value`` is the display value (always >= 0, drives the band width),
    ``Q`` the raw flux shown in tooltips and never used for geometry.
    """

    index: int
    source: Node
    target: Node
    value: float
    Q: float

    dy: float = 0.0
    sy0: float = 0.0
    ty0: float = 0.0

    @property
    def is_self_loop(self) -> bool:
        return self.source is self.target

    def to_dict(self) -> dict:
        return {
            "source": self.source.index,
            "target": self.target.index,
            "value": float(self.value),
            "Q": float(self.Q),
        }


@dataclass
class SankeyGraph:
    """Nodes and links ready for the layout.

    Attributes:
        nodes (list[Node]): Nodes, fleets first then groups.
        links (list[Link]): Links in creation order.
        shifted (bool): True when display values were shifted to remove
            negative values (they are then not comparable to Q).
    """

    nodes: list
    links: list
    shifted: bool = False

    def node(self, key) -> Node:
        """Node by index (int) or name (str)."""
        if isinstance(key, Node):
            return key
        if isinstance(key, str):
            for n in self.nodes:
                if n.name == key:
                    return n
            raise KeyError(f"No node named {key!r}")
        return self.nodes[key]

    def link(self, source, target) -> Link:
        s, t = self.node(source), self.node(target)
        for l in self.links:
            if l.source is s and l.target is t:
                return l
        raise KeyError(f"No link {s.name} -> {t.name}")

    @property
    def n_layers(self) -> int:
        if not self.nodes:
            return 0
        return max(n.layer for n in self.nodes) + 1

    def to_dict(self) -> dict:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "links": [l.to_dict() for l in self.links],
        }

    @classmethod
    def from_dict(cls, doc: dict) -> "SankeyGraph":
        """Rebuild a graph from a ``{"nodes": [...], "links": [...]}`` document."""
        if "nodes" not in doc or "links" not in doc:
            raise KeyError("Document needs both 'nodes' and 'links'")

        nodes = []
        by_id = {}
        for position, d in enumerate(doc["nodes"]):
            node_id = int(d.get("node", d.get("nodes", position)))
            tlf = _nullable(d.get("TLf"))
            node = Node(
                index=position,
                name=str(d["name"]),
                layer=int(d.get("layer", 0)),
                tl=tlf,
                tl_rounded=_nullable(d.get("TLr")),
                # Les flottilles n'ont ni TL propre ni B/PB/QB/EE
                is_fleet=tlf is None and _nullable(d.get("B")) is None,
                B=_nullable(d.get("B")),
                PB=_nullable(d.get("PB")),
                QB=_nullable(d.get("QB")),
                EE=_nullable(d.get("EE")),
            )
            if node_id in by_id:
                raise ShapeError(f"Duplicate node id {node_id}")
            by_id[node_id] = node
            nodes.append(node)

        links = []
        for k, d in enumerate(doc["links"]):
            missing = [key for key in ("source", "target", "value") if key not in d]
            if missing:
                raise KeyError(f"Link {k} misses {missing}")
            ends = [int(d["source"]), int(d["target"])]
            unknown = [i for i in ends if i not in by_id]
            if unknown:
                raise ShapeError(f"Link {k} references unknown node id {unknown[0]}")
            source, target = (by_id[i] for i in ends)
            value = float(d["value"])
            if value < 0:
                raise ValueError(f"Link {k} has a negative display value {value}")
            links.append(
                Link(
                    index=k,
                    source=source,
                    target=target,
                    value=value,
                    Q=float(d.get("Q", value)),
                )
            )
        return cls(nodes=nodes, links=links)
