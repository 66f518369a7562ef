"""Validation methods for the loan app."""


def generate_next_loan_request_reference():
    """Generate the next available LoanRequest reference."""
    from loan.models import LoanRequest

    return LoanRequest.generate_reference()


def validate_loan_request_reference(value):
    """Validate that the LoanRequest reference field matches the required pattern."""
    from loan.models import LoanRequest

    LoanRequest.validate_reference_field(value)
