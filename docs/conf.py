import os
import sys

sys.path.insert(0, os.path.abspath("../src"))

project = "kernel-exp-family"
copyright = "2025, kernel-exp-family developers"
author = "kernel-exp-family developers"
release = "0.1.0"

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.napoleon",  # Google-style docstrings
    "sphinx.ext.intersphinx",
    "sphinx_autodoc_typehints",
    "sphinx.ext.mathjax",  # kernel derivatives are written in LaTeX
]

root_doc = "index"

autodoc_default_options = {
    "members": True,
    "undoc-members": False,
    "special-members": "__init__, __call__",
    "show-inheritance": True,
}
autodoc_member_order = "bysource"
autodoc_typehints = "description"

napoleon_google_docstring = True
napoleon_numpy_docstring = False

intersphinx_mapping = {
    "python": ("https://docs.python.org/3", None),
    "numpy": ("https://numpy.org/doc/stable", None),
    "jax": ("https://jax.readthedocs.io/en/latest", None),
}

exclude_patterns = ["_build"]

html_theme = "furo"
html_title = "kernel-exp-family"
