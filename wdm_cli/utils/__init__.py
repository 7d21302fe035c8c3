"""
Shared helpers for formatting, platform detection and structured logging.
"""
