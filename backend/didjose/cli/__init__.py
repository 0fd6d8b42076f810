"""didjose CLI tools.

Usage:
    didjose decode <jwt>
    didjose inspect-jwe message.jwe
    didjose algorithms
"""

from .jose_cli import main

__all__ = ["main"]
