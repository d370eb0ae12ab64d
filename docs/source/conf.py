# Configuration file for the Sphinx documentation builder.

# -- Project information

project = "citefusepy"
copyright = "2026, citefusepy developers"
authors = "citefusepy developers"

release = "0.1.0"
version = "0.1.0"

# -- General configuration ------------------------------------------------

needs_sphinx = "2.0"

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.doctest",
    "sphinx.ext.coverage",
    "sphinx.ext.mathjax",
    "sphinx.ext.autosummary",
    "sphinx.ext.intersphinx",
    "sphinx_autodoc_typehints",
    "sphinx_copybutton",
]

# Generate the API documentation when building
autosummary_generate = True

intersphinx_mapping = dict(
    python=("https://docs.python.org/3", None),
    anndata=("https://anndata.readthedocs.io/en/latest/", None),
    scanpy=("https://scanpy.readthedocs.io/en/latest/", None),
    sklearn=("https://scikit-learn.org/stable/", None),
    scipy=("https://docs.scipy.org/doc/scipy/reference/", None),
    igraph=("https://python.igraph.org/en/stable/api/", None),
    umap=("https://umap-learn.readthedocs.io/en/latest/", None),
)

intersphinx_disabled_domains = ["std"]

templates_path = ["_templates"]
source_suffix = [".rst"]
master_doc = "index"

# -- Options for EPUB output
epub_show_urls = "footnote"
