"""Flowgate: workflow card-move rule engine."""

__version__ = "0.3.0"
