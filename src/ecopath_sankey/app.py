import sys
from pathlib import Path

_SRC = Path(__file__).resolve().parents[1]  # .../repo/src
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

import json
import os
import tempfile
import warnings

import numpy as np
import streamlit as st

from ecopath_sankey.config import BuilderOptions, Margin, SankeyConfig
from ecopath_sankey.demo import demo_model
from ecopath_sankey.food_web import FoodWebModel
from ecopath_sankey.graph import SankeyGraph
from ecopath_sankey.graph_builder import build_graph
from ecopath_sankey.sankey import InteractiveView

LINKSCALES = {
    "None": None,
    "Square root": np.sqrt,
    "log10(1 + Q)": lambda q: np.log10(1 + np.abs(q)) * np.sign(q),
}

st.set_page_config(page_title="Ecopath Sankey", layout="wide")

# Initialisation de l'état des variables
for k, v in {
    "model": None,
    "graph_doc": None,
    "source_name": None,
    "positions": {},
    "focus": None,
}.items():
    st.session_state.setdefault(k, v)

st.title("Ecopath Sankey")
st.text("Biomass fluxes of a food web, horizontal position = trophic level.")

tab1, tab2, tab3, tab4 = st.tabs(
    ["Documentation", "Data uploading", "Sankey", "Flow matrix"]
)

with tab1:
    st.header("Reading the diagram")
    st.markdown(
        """
- Each box is a functional group (or a fishing fleet, always in the last column).
  Its height is proportional to the larger of its inflow and outflow.
- Each band is a biomass flux from a prey to its predator (or to a fleet).
- Bands going **backward** (from a higher to a lower trophic level, e.g. a
  squid eating small cod) leave the source to the right, loop back and
  enter the target from the left.
- Trophic levels are rounded to the chosen step before being turned into
  columns. A fine step gives many sparse columns, a coarse one stacks nodes.
- A non-linear link scale (square root, log) helps when fluxes span several
  orders of magnitude, but breaks the additivity of the diagram.
- Showing flows to detritus is experimental: detrital groups then leave
  their trophic level 1 column.
"""
    )

with tab2:
    st.header("Data uploading")
    st.write(
        "Upload an Excel workbook (sheets *groups*, *fleets*, *flows*) or a "
        "nodes/links JSON document, or use the demonstration food web."
    )

    uploaded = st.file_uploader("Model file", type=["xlsx", "json"])
    if uploaded is not None and uploaded.name != st.session_state.source_name:
        try:
            if uploaded.name.endswith(".json"):
                doc = json.load(uploaded)
                SankeyGraph.from_dict(doc)  # validation
                st.session_state.graph_doc = doc
                st.session_state.model = None
            else:
                # pandas lit le classeur depuis un fichier temporaire
                with tempfile.NamedTemporaryFile(delete=False, suffix=".xlsx") as tmp:
                    tmp.write(uploaded.getvalue())
                try:
                    st.session_state.model = FoodWebModel.from_excel(tmp.name)
                finally:
                    os.unlink(tmp.name)
                st.session_state.graph_doc = None
            st.session_state.source_name = uploaded.name
            st.session_state.positions = {}
            st.session_state.focus = None
        except (KeyError, ValueError) as e:
            st.error(f"Could not load {uploaded.name}: {e}")

    if st.button("Use demonstration food web"):
        st.session_state.model = demo_model()
        st.session_state.graph_doc = None
        st.session_state.source_name = "demo"
        st.session_state.positions = {}
        st.session_state.focus = None

    if st.session_state.source_name:
        st.success(f"Loaded: **{st.session_state.source_name}**")
    else:
        st.warning("⚠️ Please upload a model or use the demonstration food web")

with tab3:
    if st.session_state.model is None and st.session_state.graph_doc is None:
        st.info("Load a model first (Data uploading tab).")
    else:
        col_opt, col_fig = st.columns([1, 3])

        with col_opt:
            st.subheader("Graph")
            model_loaded = st.session_state.model is not None
            round_to = st.number_input(
                "Trophic level rounding", 0.01, 1.0, 0.1, 0.01, disabled=not model_loaded
            )
            linkscale_name = st.selectbox(
                "Link scale", list(LINKSCALES), disabled=not model_loaded
            )
            show_detritus = st.checkbox(
                "Show flows to detritus (experimental)", disabled=not model_loaded
            )

            st.subheader("Layout")
            width = st.slider("Width", 300, 1600, 760, 10)
            height = st.slider("Height", 200, 1200, 400, 10)
            node_padding = st.slider("Node padding", 0, 80, 28)
            node_width = st.slider("Node width", 2, 40, 15)
            curvature = st.slider("Curvature", 0.0, 1.0, 0.5, 0.05)
            iterations = st.slider("Relaxation iterations", 0, 500, 32)

        config = SankeyConfig(
            width=width,
            height=height,
            margin=Margin(),
            node_padding=node_padding,
            node_width=node_width,
            curvature=curvature,
            iterations=iterations,
        )

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            if model_loaded:
                graph = build_graph(
                    st.session_state.model,
                    BuilderOptions(
                        round_to=round_to,
                        linkscale=LINKSCALES[linkscale_name],
                        show_detritus=show_detritus,
                    ),
                )
            else:
                graph = SankeyGraph.from_dict(st.session_state.graph_doc)
            view = InteractiveView(graph, config)
        for w in caught:
            st.warning(f"⚠️ {w.message}")

        # Déplacements manuels conservés entre deux exécutions du script
        for name, y in st.session_state.positions.items():
            if any(n.name == name for n in graph.nodes):
                view.on_node_drag(name, y)

        with col_opt:
            st.subheader("Interaction")
            names = [n.name for n in graph.nodes]
            moved = st.selectbox("Node to move", names)
            node = graph.node(moved)
            new_y = st.slider(
                "Vertical position",
                0.0,
                float(max(config.height - node.dy, 0.0)) or 1.0,
                float(node.y),
            )
            if st.button("Move node"):
                st.session_state.positions[moved] = new_y
                view.on_node_drag(moved, new_y)

            highlight = st.selectbox("Highlight links of", ["—"] + names)
            if highlight != "—":
                view.on_node_hover(highlight)

            focus = st.selectbox("Show only links of", ["—"] + names)
            if focus != "—":
                view.on_node_double_click(focus)

        with col_fig:
            fig = view.figure()
            st.plotly_chart(fig, use_container_width=False)

            st.download_button(
                "Download JSON",
                json.dumps(graph.to_dict(), indent=2),
                file_name="ecopathmodel.json",
                mime="application/json",
            )
            st.download_button(
                "Download HTML",
                fig.to_html(include_plotlyjs="cdn"),
                file_name="index.html",
                mime="text/html",
            )

with tab4:
    model = st.session_state.model
    if model is None:
        st.info("The flow matrix is only available for workbook or demo models.")
    else:
        st.plotly_chart(model.plot_heatmap_interactive(), use_container_width=True)
        st.subheader("Flow balance")
        st.caption(
            "Respiration, egestion and export are not part of the matrix: "
            "groups are not expected to balance."
        )
        st.dataframe(model.flow_balance())
