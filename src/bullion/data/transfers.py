"""Build transactions from imported records (CSV rows, API payloads)."""

from typing import Any
import uuid

from bullion.config.logger import get_logger
from bullion.ledger.errors import MalformedInputError
from bullion.ledger.models import Transaction, TransactionKind

logger = get_logger(__name__)

# Accepted header spellings, mapped to Transaction field names
COLUMN_ALIASES = {
    "type": "kind",
    "party": "counterparty_name",
    "party_name": "counterparty_name",
    "counterparty": "counterparty_name",
    "qty": "quantity",
    "quantity_grams": "quantity",
    "rate": "unit_rate",
    "rate_per_gram": "unit_rate",
    "taxable": "taxable_amount",
    "tax": "tax_amount",
    "gst_amount": "tax_amount",
    "total": "total_amount",
}


def generate_id() -> str:
    """Collision-free transaction id."""
    return uuid.uuid4().hex


def normalize_record(record: dict[str, Any]) -> dict[str, Any]:
    """Lower-case keys and map known aliases onto Transaction fields."""
    normalized = {}
    for key, value in record.items():
        name = str(key).strip().lower().replace(" ", "_")
        normalized[COLUMN_ALIASES.get(name, name)] = value
    if not normalized.get("id"):
        normalized["id"] = generate_id()
    return normalized


def transactions_from_records(records: list[dict[str, Any]]) -> list[Transaction]:
    """Convert records to validated transactions, keeping their order.

    Raises:
        MalformedInputError: on the first record that cannot be used, naming its row
    """
    transactions = []
    seen: set[str] = set()
    for row, record in enumerate(records, start=1):
        try:
            txn = Transaction.from_dict(normalize_record(record))
            txn.validate()
        except MalformedInputError as e:
            raise MalformedInputError(f"row {row}: {e}") from e
        if txn.id in seen:
            raise MalformedInputError(f"row {row}: duplicate id", txn.id)
        seen.add(txn.id)
        transactions.append(txn)

    logger.info(
        "Parsed %d records (%d purchases, %d sales)",
        len(transactions),
        sum(t.kind is TransactionKind.PURCHASE for t in transactions),
        sum(t.kind is TransactionKind.SALE for t in transactions),
    )
    return transactions
