# ==============================================
# File: loanview/exceptions.py
# Description: Error taxonomy for the conversational eligibility engine
# ==============================================


class LoanViewError(Exception):
    """Base class for all engine errors"""
    pass


class AnswerValidationError(LoanViewError):
    """Raised when an interview answer fails its step rule (user is re-prompted)"""

    def __init__(self, step_key: str, hint: str):
        super().__init__(f"{step_key}: {hint}")
        self.step_key = step_key
        self.hint = hint


class UnknownLoanType(LoanViewError):
    """Raised when a loan type id/label cannot be resolved against the catalog"""
    pass


class UnknownLender(LoanViewError):
    """Raised when a lender id/name cannot be resolved against the catalog"""
    pass


class CalculatorInputError(LoanViewError):
    """Raised when non-positive principal/tenure or a negative rate reaches the EMI formula"""
    pass


class ExternalGeneratorFailure(LoanViewError):
    """Timeout, transport error or malformed reply from the optional text generator"""
    pass


class CatalogError(LoanViewError):
    """Invalid lender catalog configuration"""
    pass
