"""Imperfect Abs smart contracts."""
