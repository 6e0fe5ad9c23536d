"""Data file loaders."""

from .svmlight import load, loads, parse_line

__all__ = ["load", "loads", "parse_line"]
