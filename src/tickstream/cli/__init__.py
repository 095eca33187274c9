"""Command-line interface for tickstream."""
