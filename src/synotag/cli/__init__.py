"""
CLI interface module for synotag.

Provides the Typer-based command-line interface for inspecting tag
frequencies and curating synonyms.
"""

from __future__ import annotations

__all__: list[str] = []
