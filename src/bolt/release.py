# Copyright (c) 2024 Bolt Contributors
# MIT License

"""Bolt release metadata."""

from __future__ import annotations

__version__ = "0.3.0"
__author__ = "Bolt Contributors"
__codename__ = "Anvil"

# Version info tuple for programmatic comparison
VERSION_INFO = (0, 3, 0)
