"""
Receipt verification and redemption.

Runs one verification call through the pipeline
Apple client -> response interpreter -> redemption ledger -> expiry check,
and turns every outcome into a VerificationVerdict.
"""
import logfire
from datetime import datetime, timezone
from typing import Callable, Optional

from server.core.config.general_config import Settings, settings
from server.core.models.receipt_models import SelectedTransaction, VerificationVerdict
from server.core.service.receipt_verification.deadline import Deadline
from server.core.service.receipt_verification.exceptions import (
    FAILED_TO_VERIFY_MESSAGE,
    DuplicateRedemptionError,
    ExpiredReceiptError,
    ReceiptValidationError,
    ReceiptVerificationError,
)
from server.core.service.receipt_verification.redemption_ledger import RedemptionLedger, build_ledger
from server.core.service.receipt_verification.response_interpreter import (
    TransactionOrdering,
    get_ordering,
    interpret,
    lexicographic_order,
)
from server.core.service.receipt_verification.verifier_client import AppleVerifierClient


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReceiptVerificationService:
    """Verifies receipts and redeems each transaction at most once per user."""

    def __init__(
        self,
        client: AppleVerifierClient,
        ledger: RedemptionLedger,
        shared_secret: str,
        bundle_id: str,
        ordering: TransactionOrdering = lexicographic_order,
        default_timeout: Optional[float] = None,
        now: Callable[[], datetime] = _utcnow
    ):
        self.client = client
        self.ledger = ledger
        self._shared_secret = shared_secret
        self._bundle_id = bundle_id
        self._ordering = ordering
        self._default_timeout = default_timeout
        self._now = now

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "ReceiptVerificationService":
        return cls(
            client=AppleVerifierClient(retry_environment=config.APPLE_RETRY_ENVIRONMENT),
            ledger=build_ledger(config),
            shared_secret=config.APPLE_SHARED_SECRET,
            bundle_id=config.APPLE_BUNDLE_ID,
            ordering=get_ordering(config.TRANSACTION_ORDERING),
            default_timeout=config.VERIFY_TIMEOUT_SECONDS,
        )

    def verify_receipt(
        self,
        uid: str,
        receipt_data: str,
        timeout: Optional[float] = None
    ) -> VerificationVerdict:
        """
        Verify a receipt and redeem its most recent transaction for the user.

        Never raises: transport, validation, duplicate, expiry and store failures
        all come back as a 400 verdict.

        Args:
            uid: Identity of the redeeming user
            receipt_data: Base64 encoded receipt
            timeout: Seconds for the whole call, defaults to the configured timeout

        Returns:
            VerificationVerdict with code 200 on success, 400 otherwise
        """
        try:
            selected = self._redeem(uid, receipt_data, timeout)
        except ReceiptVerificationError as e:
            if e.fatal:
                logfire.error(
                    f"Receipt verification aborted: {str(e)}",
                    extra={"uid": uid, "error": type(e).__name__},
                    _exc_info=True
                )
            else:
                logfire.warning(
                    f"Receipt verification failed: {str(e)}",
                    extra={"uid": uid, "error": type(e).__name__}
                )
            return VerificationVerdict.failure(e.verdict_message)
        except Exception as e:
            logfire.error(
                f"Unexpected error during receipt verification: {str(e)}",
                extra={"uid": uid},
                _exc_info=True
            )
            return VerificationVerdict.failure(FAILED_TO_VERIFY_MESSAGE)

        logfire.info(
            f"Receipt verified for user {uid}",
            extra={"uid": uid, "transaction_id": selected.transaction_id, "expires_at": str(selected.expires_at)}
        )
        return VerificationVerdict.success()

    def _redeem(self, uid: str, receipt_data: str, timeout: Optional[float]) -> SelectedTransaction:
        deadline = Deadline(self._default_timeout if timeout is None else timeout)

        response = self.client.verify(receipt_data, self._shared_secret, timeout=deadline.remaining())

        selected, ok = interpret(response, self._bundle_id, self._ordering)
        if not ok:
            raise ReceiptValidationError("Receipt did not pass validation", status=response.status)

        if not self.ledger.compare_and_set(uid, selected.transaction_id, timeout=deadline.remaining()):
            raise DuplicateRedemptionError(uid, selected.transaction_id)

        # The ledger slot is consumed even when the transaction turns out expired
        if selected.expires_at is None or self._now() >= selected.expires_at:
            raise ExpiredReceiptError(selected.transaction_id, selected.expires_at)

        return selected
