"""Planner backend: areas, projects and tasks over RPC."""

__version__ = "0.1.0"
