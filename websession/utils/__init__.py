"""
Utility functions shared by the API server and the management commands.

Modules:
--------
logging_setup
    Logging configuration for the websession loggers.
"""

from websession.utils.logging_setup import setup_logging

__all__ = [
    "setup_logging",
]
