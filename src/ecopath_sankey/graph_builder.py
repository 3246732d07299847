"""Conversion of a food web model into Sankey nodes and links.

The x-position of a group comes from its trophic level, rounded to
``round_to`` and turned into an integer column index by dividing by the
smallest gap between distinct rounded levels. Fleets always sit in the
rightmost column. Display values are the (optionally rescaled) fluxes,
shifted once if any of them is negative.
"""

import logging
import warnings

import numpy as np
import pandas as pd

from ecopath_sankey.config import BuilderOptions
from ecopath_sankey.errors import (
    DegenerateLayoutWarning,
    DetritusDisplayWarning,
    DisplayShiftWarning,
    ShapeError,
)
from ecopath_sankey.food_web import GROUP_COLUMNS, FoodWebModel
from ecopath_sankey.graph import Link, Node, SankeyGraph

logger = logging.getLogger(__name__)


def _nan_to_none(v):
    return None if v is None or pd.isna(v) else float(v)


def assign_layers(tl, is_fleet, round_to=0.1):
    """Integer column index and rounded trophic level of every node.

    Fewer than two distinct rounded levels cannot define a column spacing:
    every group then goes to column 0 and a ``DegenerateLayoutWarning`` is
    emitted.

    Args:
        tl (array-like of float): Trophic level of each node (ignored for
            fleets, may be NaN).
        is_fleet (array-like of bool): True for fleet / gear nodes.
        round_to (float): Rounding step of the trophic levels.

    Returns:
        tuple: ``(layer, tl_rounded)``. ``layer`` is an int array starting at
        0, fleets one column right of the last group column. ``tl_rounded``
        holds the rounded trophic levels (the largest one for fleets).
    """
    if not round_to > 0:
        raise ValueError(f"round_to must be > 0, got {round_to}")
    tl = np.asarray(tl, dtype=float)
    is_fleet = np.asarray(is_fleet, dtype=bool)
    if tl.shape != is_fleet.shape:
        raise ShapeError(
            f"{tl.size} trophic levels given for {is_fleet.size} nodes"
        )

    n = tl.size
    layer = np.zeros(n, dtype=int)
    tl_rounded = np.full(n, np.nan)
    groups = ~is_fleet & np.isfinite(tl)

    if not groups.any():
        if n:
            warnings.warn(
                "No node has a trophic level: single-column layout.",
                DegenerateLayoutWarning,
            )
        return layer, tl_rounded

    # Arrondi à round_to, puis nettoyage du bruit flottant (0.30000000000000004)
    tl_rounded[groups] = np.round(np.round(tl[groups] / round_to) * round_to, 10)
    levels = np.unique(tl_rounded[groups])

    if levels.size < 2:
        warnings.warn(
            f"All groups round to trophic level {levels[0]:g}: single-column layout.",
            DegenerateLayoutWarning,
        )
    else:
        dl = np.min(np.diff(levels))
        # floor(x + 0.5) keeps levels that are dl apart in distinct columns
        raw = np.floor(tl_rounded[groups] / dl + 0.5).astype(int)
        layer[groups] = raw - raw.min()

    # Les flottilles prélèvent : colonne à droite du dernier groupe
    layer[~groups] = layer[groups].max() + 1
    tl_rounded[~groups] = levels[-1]
    return layer, tl_rounded


def normalize_values(values):
    """Shifts display values so that none is negative.

    If any value is negative, every value becomes
    ``value - min + 0.01 * (max - min)``. Relative order is kept; the
    result is no longer comparable to the raw flux.

    Returns:
        tuple: ``(values, shifted)``, the display values as an array and
        True when the shift was applied.
    """
    values = np.asarray(values, dtype=float)
    if values.size == 0 or values.min() >= 0:
        return values.copy(), False

    vmin, vmax = values.min(), values.max()
    shifted = values - vmin + 0.01 * (vmax - vmin)
    warnings.warn(
        f"Negative display values (min {vmin:.3g}) were shifted by "
        f"{-vmin + 0.01 * (vmax - vmin):.3g}; link widths are not comparable to Q.",
        DisplayShiftWarning,
    )
    return shifted, True


def _scale(linkscale, q):
    if linkscale is None or q.size == 0:
        return q.astype(float)
    values = np.asarray(linkscale(q), dtype=float)
    if values.shape != q.shape:
        raise ValueError(
            f"linkscale returned shape {values.shape} for {q.shape} fluxes"
        )
    if not np.all(np.isfinite(values)):
        raise ValueError("linkscale produced non-finite values")
    return values


def build_graph(model: FoodWebModel, options: BuilderOptions | None = None) -> SankeyGraph:
    """Builds the Sankey graph of a food web model.

    Args:
        model (FoodWebModel): Source model (left untouched).
        options (BuilderOptions, optional): Rounding, link scaling and
            detritus display. Defaults to ``BuilderOptions()``.

    Returns:
        SankeyGraph: Nodes ordered fleets first, then groups by ascending
        trophic level; one link per nonzero flux, in row-major order.
    """
    options = options or BuilderOptions()
    model = model.sorted_by_trophic()
    flows = model.flows.copy()

    # 1) Flux vers les détritus
    detritus = model.is_detritus()
    if options.show_detritus:
        if detritus.any():
            warnings.warn(
                "Flows to detritus are displayed: detrital groups no longer sit "
                "at trophic level 1. This option is experimental.",
                DetritusDisplayWarning,
            )
    else:
        flows[:, detritus] = 0.0

    # 2) Flottilles en premier, puis groupes
    order = np.concatenate(
        [np.arange(model.ngroup, model.ngroup + model.ngear), np.arange(model.ngroup)]
    )
    flows = flows[np.ix_(order, order)]
    labels = [model.labels[i] for i in order]
    is_fleet = np.concatenate([np.ones(model.ngear, bool), np.zeros(model.ngroup, bool)])
    tl = model.trophic_levels()[order]

    # 3) Colonnes
    layer, tl_rounded = assign_layers(tl, is_fleet, options.round_to)

    # 4) Noeuds
    nodes = []
    for k, label in enumerate(labels):
        if is_fleet[k]:
            attrs = {c: None for c in GROUP_COLUMNS}
        else:
            row = model.groups.loc[label]
            attrs = {c: _nan_to_none(row[c]) for c in GROUP_COLUMNS}
        nodes.append(
            Node(
                index=k,
                name=label,
                layer=int(layer[k]),
                tl=attrs["TL"],
                tl_rounded=_nan_to_none(tl_rounded[k]),
                is_fleet=bool(is_fleet[k]),
                B=attrs["B"],
                PB=attrs["PB"],
                QB=attrs["QB"],
                EE=attrs["EE"],
            )
        )

    # 5) Liens (flux non nuls uniquement)
    src, tgt = np.nonzero(flows)
    q = flows[src, tgt]
    values, shifted = normalize_values(_scale(options.linkscale, q))
    links = [
        Link(
            index=k,
            source=nodes[i],
            target=nodes[j],
            value=float(values[k]),
            Q=float(q[k]),
        )
        for k, (i, j) in enumerate(zip(src, tgt))
    ]

    logger.debug(
        "Built graph: %d nodes, %d links, %d layers",
        len(nodes),
        len(links),
        int(layer.max()) + 1 if layer.size else 0,
    )
    return SankeyGraph(nodes=nodes, links=links, shifted=shifted)


def build_graph_from_arrays(
    flows,
    names,
    tl,
    attributes=None,
    fleets=(),
    types=None,
    options: BuilderOptions | None = None,
) -> SankeyGraph:
    """Shortcut for ``build_graph`` when the model is held in plain arrays.

    Args:
        flows (array-like): Square flux matrix, groups then fleets.
        names (list of str): Group names.
        tl (array-like): Trophic level of each group.
        attributes (dict or DataFrame, optional): B, PB, QB, EE per group.
            Missing columns are filled with NaN.
        fleets (list of str): Fleet names.
        types (array-like, optional): Ecopath group type (2 = detritus).
        options (BuilderOptions, optional)
    """
    names = [str(n) for n in names]
    tl = np.asarray(tl, dtype=float)
    if tl.shape != (len(names),):
        raise ShapeError(f"{tl.size} trophic levels given for {len(names)} groups")

    groups = pd.DataFrame(index=names)
    groups["TL"] = tl
    attributes = pd.DataFrame(attributes) if attributes is not None else pd.DataFrame()
    if len(attributes.columns) and len(attributes) != len(names):
        raise ShapeError(
            f"Attribute table has {len(attributes)} rows for {len(names)} groups"
        )
    for c in GROUP_COLUMNS[1:]:
        groups[c] = attributes[c].to_numpy(dtype=float) if c in attributes else np.nan
    if types is not None:
        types = np.asarray(types)
        if types.shape != (len(names),):
            raise ShapeError(f"{types.size} group types given for {len(names)} groups")
        groups["type"] = types

    return build_graph(FoodWebModel(groups, fleets, flows), options)
