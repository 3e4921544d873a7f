"""
Catalog-backed services: eligibility evaluation and rate comparison.
"""

from .comparison import RateComparisonService
from .eligibility import EligibilityEvaluator

__all__ = ["RateComparisonService", "EligibilityEvaluator"]
