"""Nethunter installer for the OnePlus 5 (cheeseburger)."""

__version__ = "1.0.0"
