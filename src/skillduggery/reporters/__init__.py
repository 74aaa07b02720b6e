"""Scan run reporters."""
