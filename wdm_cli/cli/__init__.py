"""
Command-Line Interface Layer.

This package contains the Typer application and the Rich formatters used to
render command output.
"""
