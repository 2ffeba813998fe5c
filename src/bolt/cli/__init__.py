"""Command-line entry points for bolt."""
