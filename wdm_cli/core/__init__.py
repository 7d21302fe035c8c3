"""
Core application entry points.

``commands`` implements update, status, clean, start and shutdown on top of
the providers and the server controller, independent of the CLI.
"""
