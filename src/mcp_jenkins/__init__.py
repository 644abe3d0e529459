"""Butlercraft - declarative Jenkins agent, node, and job management."""

__version__ = "0.1.0"
