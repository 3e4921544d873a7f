"""
LoanView advisor: loan recommendations, lender comparison and eligibility checks.
"""

__version__ = "1.0.0"
