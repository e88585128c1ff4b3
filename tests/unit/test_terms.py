"""Unit tests for request terms validation"""

import pytest

from peerloan.domain.exceptions import ValidationError
from peerloan.domain.models import CollateralTerms, CollateralType, RequestTerms, SecurityType
from peerloan.domain.terms import validate_request_terms

pytestmark = pytest.mark.unit


def make_terms(**overrides) -> RequestTerms:
    values = dict(
        amount_cents=10000,
        duration_months=6,
        security_type=SecurityType.UNSECURED,
        purpose="Car repair",
    )
    values.update(overrides)
    return RequestTerms(**values)


def test_valid_unsecured_terms():
    terms = make_terms(credit_score=720)
    assert validate_request_terms(terms) is terms


def test_valid_secured_terms():
    terms = make_terms(
        security_type=SecurityType.SECURED,
        collateral=CollateralTerms(type=CollateralType.AUTOMOBILE, estimated_value_cents=1_500_000),
    )
    assert validate_request_terms(terms) is terms


def test_secured_with_zero_value_collateral_is_allowed():
    terms = make_terms(
        security_type=SecurityType.SECURED,
        collateral=CollateralTerms(type=CollateralType.OTHER, estimated_value_cents=0),
    )
    validate_request_terms(terms)


@pytest.mark.parametrize(
    "overrides,message",
    [
        ({"amount_cents": 0}, "Amount"),
        ({"amount_cents": -100}, "Amount"),
        ({"duration_months": 0}, "Duration"),
        ({"purpose": "   "}, "Purpose"),
        ({"credit_score": 299}, "Credit score"),
        ({"credit_score": 851}, "Credit score"),
    ],
)
def test_invalid_terms(overrides, message):
    with pytest.raises(ValidationError, match=message):
        validate_request_terms(make_terms(**overrides))


def test_secured_requires_collateral():
    with pytest.raises(ValidationError, match="required"):
        validate_request_terms(make_terms(security_type=SecurityType.SECURED))


def test_secured_rejects_negative_collateral_value():
    terms = make_terms(
        security_type=SecurityType.SECURED,
        collateral=CollateralTerms(type=CollateralType.GOLD, estimated_value_cents=-1),
    )
    with pytest.raises(ValidationError):
        validate_request_terms(terms)


def test_unsecured_rejects_collateral():
    terms = make_terms(collateral=CollateralTerms(type=CollateralType.GOLD, estimated_value_cents=100))
    with pytest.raises(ValidationError, match="Unsecured"):
        validate_request_terms(terms)
