"""
wdm-cli: a command-line manager for WebDriver binaries and the Selenium server.
"""

__version__ = "0.3.0"
