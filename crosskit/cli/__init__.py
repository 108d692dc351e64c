"""
crosskit CLI module.

This module provides the command-line interface for crosskit.
"""

from .parser import CLI, configure_logging, main

__all__ = ["CLI", "configure_logging", "main"]
