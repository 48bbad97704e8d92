# Configuration file for the Sphinx documentation builder.

project = "crategraph"
copyright = "2026, crategraph contributors"
author = "crategraph contributors"

extensions = [
    "myst_parser",
    "autoapi.extension",
    "sphinx.ext.napoleon",
    "sphinx_copybutton",
]

# -- MyST (Markdown) settings ------------------------------------------------

myst_enable_extensions = [
    "colon_fence",
    "deflist",
]

# -- Sphinx-AutoAPI settings --------------------------------------------------
# Parses the sources statically, so tree-sitter and the store drivers need
# not be importable at doc build time.

autoapi_dirs = ["../crategraph"]
autoapi_type = "python"
autoapi_ignore = ["**/__main__.py"]
autoapi_options = [
    "members",
    "undoc-members",
    "show-inheritance",
    "show-module-summary",
]
autoapi_add_toctree_entry = True
autoapi_keep_files = False
autoapi_python_class_content = "both"
autoapi_member_order = "groupwise"

suppress_warnings = ["autoapi.python_import_resolution"]

# -- General settings ---------------------------------------------------------

exclude_patterns = ["_build", "Thumbs.db", ".DS_Store"]
source_suffix = {
    ".rst": "restructuredtext",
    ".md": "markdown",
}

# -- HTML output --------------------------------------------------------------

html_theme = "furo"
html_title = "crategraph"
