"""Link geometry with support for reversed (upstream) links.

Every link is drawn as three closed ribbons, in order: the *approach*
leaving the source node, the *bridge* and the *arrival* into the target
node. A forward link (target column right of the source column) only has a
bridge, a cubic Bezier ribbon between the two node faces. A reversed link
(feedback, cannibalism, same-column flow) leaves the source to the right,
turns, travels back to the left of the target and turns into it:

    /--Target
    \\----------------------\\
                   Source--/
"""

from dataclasses import dataclass

from ecopath_sankey.config import SankeyConfig

ROLES = ("approach", "bridge", "arrival")

CURVE_EXTENSION = 30
CURVE_DEPTH = 15


def _fmt(v):
    s = f"{v:.3f}".rstrip("0").rstrip(".")
    return "0" if s in ("-0", "") else s


@dataclass(frozen=True)
class PathSegment:
    """One piece of a link route.

    ``commands`` is a tuple of ``(op, points)`` pairs with ``op`` one of
    ``"M"``, ``"L"``, ``"C"``, ``"Z"`` and ``points`` a tuple of (x, y).
    """

    role: str
    commands: tuple = ()

    @property
    def is_empty(self) -> bool:
        return not self.commands

    @property
    def d(self) -> str:
        """SVG path data ("" for an empty segment)."""
        parts = []
        for op, points in self.commands:
            parts.append(op + " ".join(f"{_fmt(x)},{_fmt(y)}" for x, y in points))
        return "".join(parts)


@dataclass(frozen=True)
class LinkRoute:
    link_index: int
    reversed: bool
    segments: tuple

    def segment(self, key) -> PathSegment:
        """Segment by position (0, 1, 2) or role name."""
        if isinstance(key, str):
            return self.segments[ROLES.index(key)]
        return self.segments[key]

    @property
    def approach(self):
        return self.segments[0]

    @property
    def bridge(self):
        return self.segments[1]

    @property
    def arrival(self):
        return self.segments[2]

    @property
    def d(self) -> str:
        return "".join(s.d for s in self.segments if not s.is_empty)


class ReversibleLinkRouter:
    """Computes the route of each link from the current layout.

    Pure function of node and link positions: the same layout always gives
    the same routes.

    Args:
        config (SankeyConfig, optional): Uses ``node_width`` and ``curvature``.
        curve_extension (float): How far reversed links run past the node
            faces before turning.
        curve_depth (float): Vertical offset of the turn of reversed links.
    """

    def __init__(
        self,
        config: SankeyConfig | None = None,
        curve_extension: float = CURVE_EXTENSION,
        curve_depth: float = CURVE_DEPTH,
    ):
        config = config or SankeyConfig()
        self.node_width = config.node_width
        self.curvature = config.curvature
        self.curve_extension = curve_extension
        self.curve_depth = curve_depth

    @staticmethod
    def is_reversed(link) -> bool:
        return not link.target.x > link.source.x

    def route(self, link) -> LinkRoute:
        if self.is_reversed(link):
            segments = self._backward(link)
        else:
            segments = (
                PathSegment("approach"),
                self._forward(link),
                PathSegment("arrival"),
            )
        return LinkRoute(link.index, self.is_reversed(link), segments)

    def routes(self, graph) -> list:
        return [self.route(link) for link in graph.links]

    def path(self, index: int):
        """Drawing function ``link -> str`` for segment ``index`` (0, 1 or 2)."""
        if index not in (0, 1, 2):
            raise ValueError(f"Path index must be 0, 1 or 2, got {index}")
        return lambda link: self.route(link).segments[index].d

    def _forward(self, link) -> PathSegment:
        dy = max(0.0, link.dy)
        x0 = link.source.x + self.node_width
        x1 = link.target.x
        x2 = x0 + (x1 - x0) * self.curvature
        x3 = x0 + (x1 - x0) * (1 - self.curvature)
        y0 = link.source.y + link.sy0
        y1 = link.target.y + link.ty0
        y2 = y0 + dy
        y3 = y1 + dy
        return PathSegment(
            "bridge",
            (
                ("M", ((x0, y0),)),
                ("C", ((x2, y0), (x3, y1), (x1, y1))),
                ("L", ((x1, y3),)),
                ("C", ((x3, y3), (x2, y2), (x0, y2))),
                ("Z", ()),
            ),
        )

    def _backward(self, link) -> tuple:
        dy = max(0.0, link.dy)
        ext = self.curve_extension
        x0 = link.source.x + self.node_width
        y0 = link.source.y + link.sy0
        x1 = link.target.x
        y1 = link.target.y + link.ty0
        # Turn upward when the source band sits below the target band
        dt = (-1 if y0 > y1 else 1) * self.curve_depth

        approach = PathSegment(
            "approach",
            (
                ("M", ((x0, y0),)),
                ("C", ((x0, y0), (x0 + ext, y0), (x0 + ext, y0 + dt))),
                ("L", ((x0 + ext, y0 + dt + dy),)),
                ("C", ((x0 + ext, y0 + dy), (x0, y0 + dy), (x0, y0 + dy))),
                ("Z", ()),
            ),
        )
        bridge = PathSegment(
            "bridge",
            (
                ("M", ((x0 + ext, y0 + dt),)),
                ("C", ((x0 + ext, y0 + 3 * dt), (x1 - ext, y1 - 3 * dt), (x1 - ext, y1 - dt))),
                ("L", ((x1 - ext, y1 - dt + dy),)),
                (
                    "C",
                    (
                        (x1 - ext, y1 - 3 * dt + dy),
                        (x0 + ext, y0 + 3 * dt + dy),
                        (x0 + ext, y0 + dt + dy),
                    ),
                ),
                ("Z", ()),
            ),
        )
        arrival = PathSegment(
            "arrival",
            (
                ("M", ((x1 - ext, y1 - dt),)),
                ("C", ((x1 - ext, y1), (x1, y1), (x1, y1))),
                ("L", ((x1, y1 + dy),)),
                ("C", ((x1, y1 + dy), (x1 - ext, y1 + dy), (x1 - ext, y1 + dy - dt))),
                ("Z", ()),
            ),
        )
        return approach, bridge, arrival
