"""
CLI commands for reabund.

Provides command-line interface for building read distribution models,
inspecting them, and estimating abundance from classifier reports.
"""

__all__ = ["build", "estimate", "inspect_db", "main"]
