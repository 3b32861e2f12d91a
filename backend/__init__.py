"""Imperfect Abs — Backend Package."""
