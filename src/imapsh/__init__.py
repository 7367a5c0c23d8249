"""
imapsh

An interactive, terminal-driven IMAP mailbox browser: select folders,
search, page through compact message listings and read plain-text bodies.

Version: 0.1.0-dev
"""

__version__ = "0.1.0-dev"
__description__ = "Interactive IMAP mailbox browser for the terminal"

# Package level imports for convenience
from .config.app_config import AppConfig
from .utils.logging_setup import setup_logging

__all__ = [
    "AppConfig",
    "setup_logging",
]
