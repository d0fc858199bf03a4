"""Shared runtime helpers for the battle bot entry point."""

__all__ = ["config"]
