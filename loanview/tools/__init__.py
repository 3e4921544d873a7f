"""
Pure financial calculators.
"""

from .finance_math import FinanceMathTools

__all__ = ["FinanceMathTools"]
