"""Imperfect Abs — Contracts Package."""

from smart_contracts.imperfect_abs.errors import ContractError

__all__ = ["ContractError"]
