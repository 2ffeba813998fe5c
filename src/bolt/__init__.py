# Copyright (c) 2024 Bolt Contributors
# MIT License

"""
Bolt: declarative host configuration from YAML playbooks.

Plays describe the desired state of a single target (the local machine or a
container). Tasks are resolved against play, role and fact variables,
filtered by ``when`` conditions and dispatched to idempotent modules through
a pluggable connection layer.

This package exposes the main CLI entry point and release metadata.
"""

from __future__ import annotations

from bolt.release import __version__, __author__, __codename__

__all__ = [
    "__version__",
    "__author__",
    "__codename__",
]
