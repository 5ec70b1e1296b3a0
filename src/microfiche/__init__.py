"""
Microfiche - a personal hierarchical knowledge store.
Notes are filed under a Category > Subcategory > Concept > [KeyDetail] path
and can be searched, browsed from an interactive shell or an MCP server, and
summarized with term frequency and co-occurrence statistics.

This version uses synchronous operations.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("microfiche")
except PackageNotFoundError:
    __version__ = "0.3.0"
