import logging
import warnings

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import plotly.graph_objects as go
import seaborn as sns
from matplotlib.colors import LogNorm

from ecopath_sankey.errors import FlowBalanceWarning, ShapeError

logger = logging.getLogger(__name__)

GROUP_COLUMNS = ("TL", "B", "PB", "QB", "EE")

# Codes Ecopath du type de groupe
CONSUMER, PRODUCER, DETRITUS = 0, 1, 2


class FlowMatrix:
    """Builds an adjacency matrix of biomass fluxes addressed by labels.

    Args:
        labels (list): Node labels (groups then fleets). They index the rows
            (sources) and columns (targets) of the matrix.

    Attributes:
        labels (list): The list of labels.
        label_to_index (dict): Mapping label -> row/column index.
        n (int): Number of labels.
        adjacency_matrix (numpy.ndarray): n x n matrix, entry (i, j) is the
            flux from i to j.
    """

    def __init__(self, labels):
        self.labels = list(labels)
        self.label_to_index = {label: index for index, label in enumerate(self.labels)}
        if len(self.label_to_index) != len(self.labels):
            raise ValueError("Labels must be unique")
        self.n = len(self.labels)
        self.adjacency_matrix = np.zeros((self.n, self.n))

    def _indices(self, source_label, target_label):
        try:
            return self.label_to_index[source_label], self.label_to_index[target_label]
        except KeyError as exc:
            raise KeyError(f"{exc.args[0]} not found in label_to_index") from exc

    def set_flow(self, source_label, target_label, value):
        i, j = self._indices(source_label, target_label)
        self.adjacency_matrix[i, j] = value

    def add_flow(self, source_label, target_label, value):
        i, j = self._indices(source_label, target_label)
        self.adjacency_matrix[i, j] += value

    def get_coef(self, source_label, target_label):
        """Flux between two labels, or None if one of them is unknown."""
        source_index = self.label_to_index.get(source_label)
        target_index = self.label_to_index.get(target_label)
        if source_index is not None and target_index is not None:
            return self.adjacency_matrix[source_index][target_index]
        else:
            return None


class FoodWebModel:
    """Balanced food web as exported by an Ecopath model.

    The model is an opaque data source: fluxes are given, never estimated
    here.

    Args:
        groups (pandas.DataFrame): One row per functional group, indexed by
            group name, with columns ``TL``, ``B``, ``PB``, ``QB``, ``EE`` and
            optionally ``type`` (0 consumer, 1 producer, 2 detritus).
        fleets (list of str): Names of the fishing fleets / gears.
        flows (array-like): Square matrix of size ngroup + ngear, groups first
            then fleets. Entry (i, j) is the biomass flux from i to j
            (consumption of i by j, or catch of i by fleet j).

    Attributes:
        groups (pandas.DataFrame): Group attributes.
        fleets (list): Fleet names.
        flows (numpy.ndarray): Flux matrix.
        labels (list): Group names followed by fleet names.
        label_to_index (dict): Mapping label -> matrix index.
        index_to_label (dict): Mapping matrix index -> label.

    Raises:
        ShapeError: If ``flows`` is not square or does not match the number
            of groups and fleets.
        KeyError: If a required column is missing from ``groups``.
    """

    def __init__(self, groups, fleets=(), flows=None):
        groups = pd.DataFrame(groups).copy()
        missing = [c for c in GROUP_COLUMNS if c not in groups.columns]
        if missing:
            raise KeyError(f"Group table missing columns: {missing}")
        if "type" not in groups.columns:
            groups["type"] = CONSUMER
        groups.index = groups.index.astype(str)

        self.groups = groups
        self.fleets = [str(f) for f in fleets]
        self.labels = list(self.groups.index) + self.fleets

        if len(set(self.labels)) != len(self.labels):
            dup = sorted({l for l in self.labels if self.labels.count(l) > 1})
            raise ValueError(f"Duplicate group/fleet names: {dup}")

        n = len(self.labels)
        if flows is None:
            flows = np.zeros((n, n))
        flows = np.asarray(flows, dtype=float)
        if flows.ndim != 2 or flows.shape[0] != flows.shape[1]:
            raise ShapeError(f"Flow matrix must be square, got shape {flows.shape}")
        if flows.shape[0] != n:
            raise ShapeError(
                f"Flow matrix is {flows.shape[0]}x{flows.shape[1]} but there are "
                f"{self.ngroup} groups and {self.ngear} fleets"
            )
        self.flows = flows

        self.label_to_index = {label: i for i, label in enumerate(self.labels)}
        self.index_to_label = {v: k for k, v in self.label_to_index.items()}

    @property
    def ngroup(self):
        return len(self.groups)

    @property
    def ngear(self):
        return len(self.fleets)

    @classmethod
    def from_excel(cls, path):
        """Loads a model from a workbook with sheets 'groups', 'fleets', 'flows'.

        - 'groups': a ``name`` column plus TL, B, PB, QB, EE (and ``type``)
        - 'fleets': a ``name`` column (sheet optional)
        - 'flows': long format ``source``, ``target``, ``value``
        """
        sheets = pd.read_excel(path, sheet_name=None)
        if "groups" not in sheets:
            raise KeyError("La feuille 'groups' est absente du classeur.")
        if "flows" not in sheets:
            raise KeyError("La feuille 'flows' est absente du classeur.")

        groups = sheets["groups"].set_index("name")
        fleets = list(sheets["fleets"]["name"]) if "fleets" in sheets else []

        flow_matrix = FlowMatrix(list(groups.index.astype(str)) + [str(f) for f in fleets])
        df_flows = sheets["flows"]
        dup = df_flows.groupby(["source", "target"]).size()
        dup = dup[dup > 1]
        if not dup.empty:
            raise ValueError(f"Duplicate flows found for keys: {dup.index.tolist()}")
        for _, r in df_flows.iterrows():
            flow_matrix.set_flow(str(r["source"]), str(r["target"]), float(r["value"]))

        logger.debug("Loaded %d groups and %d fleets from %s", len(groups), len(fleets), path)
        return cls(groups, fleets, flow_matrix.adjacency_matrix)

    def is_detritus(self):
        """Boolean mask over labels, True for detrital groups."""
        mask = np.zeros(len(self.labels), dtype=bool)
        mask[: self.ngroup] = self.groups["type"].to_numpy() == DETRITUS
        return mask

    def trophic_levels(self):
        """Trophic level of every label, NaN for fleets."""
        return np.concatenate(
            [self.groups["TL"].to_numpy(dtype=float), np.full(self.ngear, np.nan)]
        )

    def sorted_by_trophic(self):
        """Copy of the model with groups in ascending trophic order (stable)."""
        order = np.argsort(self.groups["TL"].to_numpy(dtype=float), kind="mergesort")
        full = np.concatenate([order, np.arange(self.ngroup, self.ngroup + self.ngear)])
        return FoodWebModel(
            self.groups.iloc[order],
            self.fleets,
            self.flows[np.ix_(full, full)],
        )

    def flow_balance(self):
        """Inflow, outflow and imbalance of every node.

        Flows not drawn in the diagram (respiration, egestion, export) are
        absent from the matrix, so nodes are not expected to balance.
        """
        inflow = self.flows.sum(axis=0)
        outflow = self.flows.sum(axis=1)
        return pd.DataFrame(
            {"inflow": inflow, "outflow": outflow, "imbalance": inflow - outflow},
            index=self.labels,
        )

    def check_balance(self, tol=1e-6):
        """Warns for every group whose inflow and outflow differ by more than tol.

        Returns:
            list: Labels of the unbalanced nodes.
        """
        df = self.flow_balance()
        # Les flottilles ne font que prélever
        df = df.iloc[: self.ngroup]
        unbalanced = df.index[df["imbalance"].abs() > tol].tolist()
        if unbalanced:
            sample = ", ".join(unbalanced[:5])
            more = "" if len(unbalanced) <= 5 else f", +{len(unbalanced) - 5} others"
            warnings.warn(
                f"{len(unbalanced)} node(s) are not flow-balanced ({sample}{more}).",
                FlowBalanceWarning,
            )
        return unbalanced

    def plot_heatmap(self, unit="t/km²/yr"):
        """Static heatmap of the flux matrix on a logarithmic colour scale.

        Uses seaborn with a ``LogNorm`` between 1e-4 and the largest flux.
        Returns the matplotlib Axes.
        """
        n = len(self.labels)
        fig, ax = plt.subplots(figsize=(max(6, 0.4 * n), max(6, 0.4 * n)))

        positive = self.flows[self.flows > 0]
        vmax = positive.max() if positive.size else 1.0
        norm = LogNorm(vmin=min(10**-4, vmax), vmax=vmax)
        sns.heatmap(
            np.where(self.flows > 0, self.flows, np.nan),
            xticklabels=range(1, n + 1),
            yticklabels=range(1, n + 1),
            cmap="plasma_r",
            annot=False,
            norm=norm,
            ax=ax,
            cbar_kws={"label": unit, "orientation": "horizontal", "pad": 0.02},
        )
        ax.grid(True, color="lightgray", linestyle="-", linewidth=0.5)
        ax.xaxis.set_ticks_position("top")
        ax.xaxis.set_label_position("top")
        ax.set_aspect("equal", adjustable="box")
        ax.set_xlabel("Predator / fleet", fontsize=12, fontweight="bold")
        ax.set_ylabel("Prey", fontsize=12, fontweight="bold")

        for i, label in enumerate(self.labels):
            ax.text(
                1.05,
                1 - (i + 0.5) / n,
                f"{i + 1}: {label}",
                transform=ax.transAxes,
                fontsize=9,
                va="center",
                ha="left",
            )
        return ax

    def plot_heatmap_interactive(self, unit="t/km²/yr"):
        """Interactive (plotly) heatmap of the flux matrix, log10 colour scale.

        Returns:
            plotly.graph_objects.Figure
        """
        n = len(self.labels)
        ticks = list(range(1, n + 1))
        log_matrix = np.where(
            self.flows > 0, np.log10(np.where(self.flows > 0, self.flows, 1.0)), np.nan
        )

        # Texte de survol : valeur réelle, pas le log10
        hover = [
            [
                f"Prey : {self.labels[i]}<br>Predator : {self.labels[j]}<br>"
                f"Q : {self.flows[i, j]:.3g} {unit}"
                for j in range(n)
            ]
            for i in range(n)
        ]

        fig = go.Figure(
            go.Heatmap(
                z=log_matrix,
                x=ticks,
                y=ticks,
                colorscale="Plasma_r",
                text=hover,
                hoverinfo="text",
                colorbar=dict(
                    title=f"log10 {unit}",
                    orientation="h",
                    x=0.5,
                    xanchor="center",
                    y=-0.15,
                    thickness=15,
                    len=1,
                ),
            )
        )
        fig.update_layout(margin=dict(t=0, b=0, l=0, r=220), yaxis_scaleanchor="x")
        fig.update_xaxes(title="Predator / fleet", side="top", tickvals=ticks)
        fig.update_yaxes(title="Prey", autorange="reversed", tickvals=ticks)
        fig.add_annotation(
            x=1.25,
            y=0.45,
            xref="paper",
            yref="paper",
            showarrow=False,
            text="<br>".join(f"{i + 1} : {lbl}" for i, lbl in enumerate(self.labels)),
            align="left",
            font=dict(size=11),
        )
        return fig
