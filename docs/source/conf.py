project, author, release = "ecopath-sankey", "ecopath-sankey contributors", "1.0.0"

extensions = [
    "myst_parser",
    "sphinx.ext.autodoc",
    "sphinx.ext.autosummary",
    "sphinx.ext.napoleon",
    "sphinx.ext.viewcode",
    "sphinx_autodoc_typehints",
    "sphinx_design",
    "sphinx_copybutton",
    "sphinx.ext.mathjax",
]
autosummary_generate = True

myst_enable_extensions = [
    "dollarmath",              # $x^2$ et $$ ... $$
]

html_theme = "pydata_sphinx_theme"
html_theme_options = {"use_edit_page_button": False, "icon_links": []}
html_show_sourcelink = False
