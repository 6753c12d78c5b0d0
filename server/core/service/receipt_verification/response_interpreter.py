"""
Interpretation of verifyReceipt responses.

This module contains the logic for:
- Rejecting responses with a non-success status or a foreign bundle id
- Picking the most recent transaction of a receipt
- Parsing the expiry of the picked transaction
"""
import logfire
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from server.core.config.apple_receipt_config import AppleReceiptConfig
from server.core.models.receipt_models import (
    PurchaseRecord,
    SelectedTransaction,
    VerificationResponse,
)

# Maps a record to its sort key; the greatest key is the most recent transaction
TransactionOrdering = Callable[[PurchaseRecord], Any]


def lexicographic_order(record: PurchaseRecord) -> str:
    """
    Plain string comparison of transaction ids.

    Only correct while all ids have the same width: "20" sorts after "100".
    Kept as the default for compatibility with already recorded redemptions.
    """
    return record.transaction_id


def _numeric_key(transaction_id: str) -> Tuple[int, int, str]:
    if transaction_id.isdigit():
        return (1, int(transaction_id), transaction_id)
    # Non-numeric ids rank below every numeric one
    return (0, 0, transaction_id)


def numeric_order(record: PurchaseRecord) -> Tuple[int, int, str]:
    """Compare transaction ids as integers."""
    return _numeric_key(record.transaction_id)


def purchase_date_order(record: PurchaseRecord) -> Tuple[int, Tuple[int, int, str]]:
    """Compare by purchase timestamp, then numerically by transaction id."""
    try:
        purchased_ms = int(record.purchase_date_ms) if record.purchase_date_ms else 0
    except ValueError:
        purchased_ms = 0
    return (purchased_ms, _numeric_key(record.transaction_id))


ORDERINGS: Dict[str, TransactionOrdering] = {
    "lexicographic": lexicographic_order,
    "numeric": numeric_order,
    "purchase_date": purchase_date_order,
}


def get_ordering(name: str) -> TransactionOrdering:
    """Look up an ordering strategy by its configuration name."""
    try:
        return ORDERINGS[name]
    except KeyError:
        raise ValueError(f"Unknown transaction ordering: {name}") from None


def parse_expires_at(record: PurchaseRecord) -> Optional[datetime]:
    """
    Expiry of a purchase record as an aware UTC datetime.

    ``expires_date`` is read in the fixed ``YYYY-MM-DD HH:MM:SS`` layout; a trailing
    zone name such as ``Etc/GMT`` is ignored. Falls back to ``expires_date_ms``.
    Returns None when neither field can be parsed.
    """
    if record.expires_date:
        text = record.expires_date.strip()[:19]
        try:
            parsed = datetime.strptime(text, AppleReceiptConfig.EXPIRES_DATE_LAYOUT)
            return parsed.replace(tzinfo=timezone.utc)
        except ValueError:
            logfire.debug(f"Unparseable expires_date: {record.expires_date}")

    if record.expires_date_ms:
        try:
            return datetime.fromtimestamp(int(record.expires_date_ms) / 1000, tz=timezone.utc)
        except (ValueError, OverflowError, OSError):
            logfire.debug(f"Unparseable expires_date_ms: {record.expires_date_ms}")

    return None


def select_latest(
    response: VerificationResponse,
    ordering: TransactionOrdering = lexicographic_order
) -> Optional[PurchaseRecord]:
    if not response.purchase_records:
        return None
    return max(response.purchase_records, key=ordering)


def interpret(
    response: VerificationResponse,
    expected_bundle_id: str,
    ordering: TransactionOrdering = lexicographic_order
) -> Tuple[Optional[SelectedTransaction], bool]:
    """
    Decide whether a verifyReceipt response proves a purchase of this app.

    Args:
        response: Parsed Apple response, after any retry
        expected_bundle_id: Bundle id of this application
        ordering: Strategy that decides which transaction is the most recent

    Returns:
        Tuple of (selected transaction, ok). The transaction is None when ok is False.
    """
    if response.status != AppleReceiptConfig.STATUS_OK:
        logfire.warning(
            f"Receipt rejected by Apple with status {response.status}",
            extra={"status": response.status}
        )
        return None, False

    if response.bundle_id != expected_bundle_id:
        logfire.warning(
            "Receipt belongs to another application",
            extra={"bundle_id": response.bundle_id, "expected_bundle_id": expected_bundle_id}
        )
        return None, False

    record = select_latest(response, ordering)
    if record is None:
        logfire.warning("Receipt contains no purchase records")
        return None, False

    selected = SelectedTransaction(
        transaction_id=record.transaction_id,
        expires_at=parse_expires_at(record),
    )
    logfire.debug(
        f"Selected transaction {selected.transaction_id}",
        extra={"expires_at": str(selected.expires_at), "candidates": len(response.purchase_records)}
    )
    return selected, True
