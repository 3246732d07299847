from dataclasses import dataclass, field
from typing import Callable


@dataclass(frozen=True)
class Margin:
    top: float = 10
    right: float = 10
    bottom: float = 50
    left: float = 10


@dataclass(frozen=True)
class SankeyConfig:
    """Settings of the layout, the link router and the view.

    Replaces the chained getter/setters of the d3 chart: build a new
    instance (or use ``dataclasses.replace``) to change a setting.

    Attributes:
        width (float): Drawing width, margins excluded (px).
        height (float): Drawing height, margins excluded (px).
        margin (Margin): Space around the drawing, used by the view only.
        node_padding (float): Minimum vertical gap between nodes of a column.
        node_width (float): Horizontal thickness of a node.
        curvature (float): Position of the Bezier control points of forward
            links, as a fraction of the horizontal distance.
        iterations (int): Number of relaxation rounds of the layout.
        low_opacity (float): Link opacity at rest.
        high_opacity (float): Link opacity when the link or one of its nodes
            is hovered.
        sort_links_by_position (bool): Order the link bands of a node by the
            position of the node at the other end instead of creation order.
    """

    width: float = 760
    height: float = 400
    margin: Margin = field(default_factory=Margin)
    node_padding: float = 28
    node_width: float = 15
    curvature: float = 0.5
    iterations: int = 32
    low_opacity: float = 0.3
    high_opacity: float = 0.7
    sort_links_by_position: bool = False

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(
                f"width and height must be positive, got {self.width}x{self.height}"
            )
        if self.node_padding < 0:
            raise ValueError(f"node_padding must be >= 0, got {self.node_padding}")
        if self.node_width < 0:
            raise ValueError(f"node_width must be >= 0, got {self.node_width}")
        if not 0 <= self.curvature <= 1:
            raise ValueError(f"curvature must be in [0, 1], got {self.curvature}")
        if self.iterations < 0:
            raise ValueError(f"iterations must be >= 0, got {self.iterations}")
        for name in ("low_opacity", "high_opacity"):
            value = getattr(self, name)
            if not 0 <= value <= 1:
                raise ValueError(f"{name} must be in [0, 1], got {value}")

    @property
    def outer_width(self) -> float:
        return self.width + self.margin.left + self.margin.right

    @property
    def outer_height(self) -> float:
        return self.height + self.margin.top + self.margin.bottom


@dataclass(frozen=True)
class BuilderOptions:
    """Options of the food web → Sankey graph conversion.

    Attributes:
        round_to (float): Fraction to round trophic levels to before layering
            (0.1 = nearest tenth). Too fine gives many sparse columns, too
            coarse stacks many nodes in one column.
        linkscale (callable, optional): Function applied to the array of
            nonzero fluxes to get display values (e.g. ``np.sqrt``). Nonlinear
            transforms break the additivity of the diagram. Identity if None.
        show_detritus (bool): Keep flows into detritus groups. Experimental:
            detrital groups are then drawn away from their TL = 1 column.
    """

    round_to: float = 0.1
    linkscale: Callable | None = None
    show_detritus: bool = False

    def __post_init__(self):
        if not self.round_to > 0:
            raise ValueError(f"round_to must be > 0, got {self.round_to}")
