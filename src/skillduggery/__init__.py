"""Skillduggery - static security scanner for agent skill packages."""

__version__ = "0.1.0"
