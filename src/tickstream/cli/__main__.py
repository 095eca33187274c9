#!/usr/bin/env python3
"""
CLI entry point for tickstream.cli module.

This allows running: python -m tickstream.cli
"""

from .main import cli

if __name__ == "__main__":
    cli()
