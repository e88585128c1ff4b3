"""Event channel names published by the lifecycle services"""

NEW_LOAN_REQUEST = "NEW_LOAN_REQUEST"
LOAN_REQUEST_UPDATED = "LOAN_REQUEST_UPDATED"
LOAN_INTEREST_RECEIVED = "LOAN_INTEREST_RECEIVED"


def request_updated_channel(request_id) -> str:
    """Per-request update channel"""
    return f"{LOAN_REQUEST_UPDATED}.{request_id}"


def interest_received_channel(borrower_id: str) -> str:
    """Per-borrower channel for new or updated lender interest"""
    return f"{LOAN_INTEREST_RECEIVED}.{borrower_id}"
