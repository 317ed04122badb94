"""
Shepherd - Personal git repository registry and bulk sync tool.

This package keeps a declarative list of git repositories in a single
config file and makes sure every listed repository is cloned and up to
date under a local source tree derived from that list.
"""

__version__ = "0.2.0"
