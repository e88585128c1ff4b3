"""Validation of borrower-supplied request terms"""

from peerloan.domain.exceptions import ValidationError
from peerloan.domain.models import RequestTerms, SecurityType

MIN_CREDIT_SCORE = 300
MAX_CREDIT_SCORE = 850


def validate_request_terms(terms: RequestTerms) -> RequestTerms:
    """
    Check amount, duration, credit score and the collateral rule.

    Collateral is mandatory for SECURED requests and must be absent for
    UNSECURED ones.

    Raises:
        ValidationError: On the first violated rule
    """
    if terms.amount_cents is None or terms.amount_cents <= 0:
        raise ValidationError("Amount must be greater than zero")
    if terms.duration_months is None or terms.duration_months < 1:
        raise ValidationError("Duration must be at least one month")
    if not terms.purpose or not terms.purpose.strip():
        raise ValidationError("Purpose is required")
    if terms.credit_score is not None and not MIN_CREDIT_SCORE <= terms.credit_score <= MAX_CREDIT_SCORE:
        raise ValidationError(f"Credit score must be between {MIN_CREDIT_SCORE} and {MAX_CREDIT_SCORE}")

    security_type = SecurityType(terms.security_type)
    if security_type == SecurityType.SECURED:
        if terms.collateral is None:
            raise ValidationError("Collateral is required for secured requests")
        if terms.collateral.type is None:
            raise ValidationError("Collateral type is required for secured requests")
        if terms.collateral.estimated_value_cents is None or terms.collateral.estimated_value_cents < 0:
            raise ValidationError("Collateral estimated value must be zero or more")
    elif terms.collateral is not None:
        raise ValidationError("Unsecured requests cannot carry collateral")

    return terms
