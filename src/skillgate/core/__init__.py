"""Core infrastructure shared by every skillgate subsystem.

Provides logging setup, configuration loading and the error hierarchy.
"""

from __future__ import annotations

__all__: list[str] = []
