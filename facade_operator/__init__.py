"""Reconciliation logic for facade and mesh gateway custom resources."""

__version__ = "2.0.0"