"""JSON-safe event payloads built from lifecycle records"""

from typing import Any, Dict, Optional

from peerloan.infrastructure.database.models import InterestedLenderRecord, LoanRequestRecord


def _str_or_none(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def request_payload(record: LoanRequestRecord) -> Dict[str, Any]:
    return {
        "loan_request_id": str(record.id),
        "borrower_id": record.borrower_id,
        "status": record.status,
        "amount_cents": record.amount_cents,
        "duration_months": record.duration_months,
        "security_type": record.security_type,
        "selected_lender_id": record.selected_lender_id,
        "linked_loan_id": _str_or_none(record.linked_loan_id),
        "accepted_offer_id": _str_or_none(record.accepted_offer_id),
    }


def interest_payload(record: LoanRequestRecord, entry: InterestedLenderRecord) -> Dict[str, Any]:
    return {
        "loan_request_id": str(record.id),
        "borrower_id": record.borrower_id,
        "lender_id": entry.lender_id,
        "interest_rate": entry.interest_rate,
        "message": entry.message,
        "timestamp": entry.timestamp.isoformat() if entry.timestamp else None,
        "interested_count": len(record.interested_lenders),
    }
