import json
import logging
import tempfile
import warnings
from pathlib import Path

from ecopath_sankey.graph import SankeyGraph

logger = logging.getLogger(__name__)

JSON_NAME = "ecopathmodel.json"
HTML_NAME = "index.html"


def write_json(graph, path):
    """Writes the nodes/links document of ``graph``.

    ``.json`` is appended when ``path`` has no extension; any other
    extension is kept but warned about.

    Returns:
        pathlib.Path: The file written.
    """
    path = Path(path)
    if path.suffix == "":
        path = path.with_suffix(".json")
    elif path.suffix != ".json":
        warnings.warn(f"File should be a .json file, got {path.name}")

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(graph.to_dict(), f, indent=2, allow_nan=False)
    logger.debug("Wrote %s", path)
    return path


def read_json(path):
    """Loads a nodes/links document written by ``write_json``."""
    with open(path, encoding="utf-8") as f:
        return SankeyGraph.from_dict(json.load(f))


def export_html(view, directory=None, include_plotlyjs="cdn"):
    """Writes a standalone diagram (index.html) and its JSON document.

    Args:
        view (InteractiveView): The diagram to export.
        directory (str or Path, optional): Target folder, created if needed.
            A new temporary folder is used when None.
        include_plotlyjs: Passed to ``plotly.io.write_html``.

    Returns:
        pathlib.Path: Path of index.html.
    """
    if directory is None:
        directory = tempfile.mkdtemp(prefix="ecopath_sankey_")
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)

    write_json(view.graph, directory / JSON_NAME)
    index = directory / HTML_NAME
    view.figure().write_html(index, include_plotlyjs=include_plotlyjs)
    logger.info("Exported Sankey diagram to %s", index)
    return index
