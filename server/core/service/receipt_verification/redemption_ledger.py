"""
Redemption ledger: the last redeemed transaction id per user.

A transaction may be redeemed at most once per user. ``compare_and_set`` is the
only write path and is atomic per user in every backend.
"""
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Any, Dict, Optional

import httpx
import logfire
from postgrest.exceptions import APIError

from server.core.config.general_config import Settings
from server.core.models.receipt_models import LedgerEntry
from server.core.service.receipt_verification.deadline import Deadline
from server.core.service.receipt_verification.exceptions import DeadlineExceededError, StoreError
from server.core.service.supabase_connectors.supabase_client import (
    RECEIPT_TABLE_NAME,
    get_supabase_service_role_client,
)

# Postgres unique_violation
UNIQUE_VIOLATION = "23505"

# Runs PostgREST round-trips so each one can be bounded by the caller's deadline
_ROUND_TRIPS = ThreadPoolExecutor(max_workers=32, thread_name_prefix="ledger")


class RedemptionLedger(ABC):
    """Key-value store of ``uid -> last redeemed transaction id``."""

    @abstractmethod
    def get(self, uid: str) -> Optional[LedgerEntry]:
        """Return the user's entry, or None if the user never redeemed anything."""

    @abstractmethod
    def compare_and_set(self, uid: str, transaction_id: str, timeout: Optional[float] = None) -> bool:
        """
        Record ``transaction_id`` as the user's last redemption.

        Returns:
            False without writing if the stored id already equals ``transaction_id``,
            True after writing otherwise

        Raises:
            StoreError: If the store fails or the write cannot happen within ``timeout``
        """


class InMemoryRedemptionLedger(RedemptionLedger):
    """Process-local ledger serialized by one lock per user."""

    def __init__(self):
        self._entries: Dict[str, str] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, uid: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(uid, threading.Lock())

    def get(self, uid: str) -> Optional[LedgerEntry]:
        transaction_id = self._entries.get(uid)
        if transaction_id is None:
            return None
        return LedgerEntry(uid=uid, transaction_id=transaction_id)

    def compare_and_set(self, uid: str, transaction_id: str, timeout: Optional[float] = None) -> bool:
        lock = self._lock_for(uid)
        if not lock.acquire(timeout=-1 if timeout is None else timeout):
            raise StoreError(f"Timed out waiting for ledger lock of {uid}")
        try:
            if self._entries.get(uid) == transaction_id:
                return False
            self._entries[uid] = transaction_id
            return True
        finally:
            lock.release()


class SupabaseRedemptionLedger(RedemptionLedger):
    """
    Ledger stored in the Supabase ``RECEIPT`` table (``uid`` primary key, ``transactionId``).

    Writes are conditional so concurrent calls for the same user serialize in Postgres:
    an UPDATE guarded by ``transactionId IS NULL OR transactionId <> new`` and, for new
    users, an INSERT that the primary key makes fail for all but one writer. Every
    round-trip is bounded by the caller's timeout.
    """

    def __init__(self, supabase_client: Any = None, timeout: Optional[float] = None):
        self._client = supabase_client
        self._timeout = timeout

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = get_supabase_service_role_client(timeout=self._timeout)
        return self._client

    def get(self, uid: str) -> Optional[LedgerEntry]:
        try:
            result = self.client.from_(RECEIPT_TABLE_NAME)\
                .select("uid, transactionId")\
                .eq("uid", uid)\
                .limit(1)\
                .execute()
        except (APIError, httpx.HTTPError) as e:
            raise StoreError(f"Failed to get transactionId of {uid}: {str(e)}") from e

        if not result.data:
            return None
        return LedgerEntry.model_validate(result.data[0])

    def compare_and_set(self, uid: str, transaction_id: str, timeout: Optional[float] = None) -> bool:
        # One budget for every round-trip of this call
        deadline = Deadline(timeout)
        try:
            if self._update_if_different(uid, transaction_id, deadline):
                return True

            try:
                self._execute(
                    self.client.from_(RECEIPT_TABLE_NAME)
                        .insert(LedgerEntry(uid=uid, transaction_id=transaction_id).to_document()),
                    deadline
                )
                logfire.info(f"Created ledger entry for user {uid}", extra={"uid": uid})
                return True
            except APIError as e:
                if e.code != UNIQUE_VIOLATION:
                    raise
                logfire.debug(f"Ledger entry for {uid} appeared concurrently", extra={"uid": uid})

            # The row exists now; no update means it holds this very transaction
            return self._update_if_different(uid, transaction_id, deadline)
        except DeadlineExceededError as e:
            raise StoreError(f"Timed out recording transactionId for {uid}") from e
        except (APIError, httpx.HTTPError) as e:
            raise StoreError(f"Failed to record transactionId for {uid}: {str(e)}") from e

    def _update_if_different(self, uid: str, transaction_id: str, deadline: Deadline) -> bool:
        # NULL <> t is not true in SQL, so a NULL transactionId has to match explicitly
        result = self._execute(
            self.client.from_(RECEIPT_TABLE_NAME)
                .update({"transactionId": transaction_id})
                .eq("uid", uid)
                .or_(f'transactionId.is.null,transactionId.neq."{transaction_id}"'),
            deadline
        )
        return bool(result.data)

    @staticmethod
    def _execute(query: Any, deadline: Deadline) -> Any:
        """
        Run one PostgREST round-trip within what is left of ``deadline``.

        A round-trip that overruns is abandoned; each statement is atomic in
        Postgres, so it either lands whole or not at all.
        """
        remaining = deadline.remaining()
        if remaining is None:
            return query.execute()
        future = _ROUND_TRIPS.submit(query.execute)
        try:
            return future.result(timeout=remaining)
        except FutureTimeoutError:
            raise DeadlineExceededError("Ledger round-trip exceeded the deadline") from None


def build_ledger(config: Settings) -> RedemptionLedger:
    """Create the ledger backend named by ``LEDGER_BACKEND``."""
    if config.LEDGER_BACKEND == "memory":
        logfire.warning("Using in-memory redemption ledger; redemptions are lost on restart")
        return InMemoryRedemptionLedger()
    return SupabaseRedemptionLedger(timeout=config.VERIFY_TIMEOUT_SECONDS)
