# tests/_drafts.py
from __future__ import annotations

from typing import Any, Dict


def cash_draft(**overrides: Any) -> Dict[str, Any]:
    draft: Dict[str, Any] = {
        "items": [{"product_id": 2, "price": 100.0, "quantity": 2}],
        "delivery_charge": 50.0,
        "delivery_address": {"name": "Test Buyer", "city": "Karachi"},
        "payment_method": "cash",
    }
    draft.update(overrides)
    return draft


def bank_draft_with_proof(**overrides: Any) -> Dict[str, Any]:
    draft = cash_draft(
        payment_method="bank",
        payment_result={"transaction_id": "BNK-1", "requires_verification": True},
        payment_proof={
            "file_name": "receipt.jpg",
            "file_size": 1024,
            "data_url": "data:image/jpeg;base64,AAAA",
        },
    )
    draft.update(overrides)
    return draft
