"""Shared constants, exceptions and helpers used by every package."""
