"""Typer-based command line interface for certoperator."""
