"""Pydantic models for App Store receipt verification."""
import logfire
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from typing import Any, List, Optional

# Status used when Apple's reply carries no usable status field
STATUS_MISSING = -1


class VerificationRequest(BaseModel):
    """Body sent to Apple's verifyReceipt endpoint."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    receipt_data: str = Field(..., alias="receipt-data", description="Base64 encoded receipt")
    password: str = Field(..., description="App shared secret")
    exclude_old_transactions: bool = Field(True, alias="exclude-old-transactions")

    def to_payload(self) -> dict:
        """Serialize with Apple's hyphenated keys."""
        return self.model_dump(by_alias=True)


class PurchaseRecord(BaseModel):
    """A single in-app purchase entry of a receipt."""
    transaction_id: str = ""
    original_transaction_id: Optional[str] = None
    product_id: Optional[str] = None
    purchase_date: Optional[str] = None
    purchase_date_ms: Optional[str] = None
    expires_date: Optional[str] = None
    expires_date_ms: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def coerce_scalars(cls, v):
        # Apple sends strings, but tolerate bare numbers
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


class VerificationResponse(BaseModel):
    """Parsed reply of Apple's verifyReceipt endpoint."""
    status: int = STATUS_MISSING
    environment: Optional[str] = None
    bundle_id: str = ""
    purchase_records: List[PurchaseRecord] = Field(default_factory=list)

    @classmethod
    def from_apple(cls, data: Any) -> "VerificationResponse":
        """
        Build a response from Apple's raw JSON, tolerating missing or malformed fields.

        Records from ``receipt.in_app`` and ``latest_receipt_info`` are merged and
        de-duplicated by transaction id, keeping the first occurrence.
        """
        if not isinstance(data, dict):
            return cls()

        status = data.get("status", STATUS_MISSING)
        if isinstance(status, bool) or not isinstance(status, (int, str)):
            status = STATUS_MISSING
        try:
            status = int(status)
        except ValueError:
            status = STATUS_MISSING

        receipt = data.get("receipt")
        if not isinstance(receipt, dict):
            receipt = {}
        bundle_id = receipt.get("bundle_id")

        raw_records = []
        for key_source, key in ((receipt, "in_app"), (data, "latest_receipt_info")):
            items = key_source.get(key)
            if isinstance(items, list):
                raw_records.extend(items)

        records = []
        seen = set()
        for item in raw_records:
            if not isinstance(item, dict):
                continue
            try:
                record = PurchaseRecord.model_validate(item)
            except ValidationError as e:
                logfire.warning(f"Skipping malformed purchase record: {e.error_count()} errors")
                continue
            if not record.transaction_id or record.transaction_id in seen:
                continue
            seen.add(record.transaction_id)
            records.append(record)

        environment = data.get("environment")
        return cls(
            status=status,
            environment=environment if isinstance(environment, str) else None,
            bundle_id=bundle_id if isinstance(bundle_id, str) else "",
            purchase_records=records,
        )


class SelectedTransaction(BaseModel):
    """The most recent transaction picked out of a receipt."""
    transaction_id: str
    expires_at: Optional[datetime] = None


class LedgerEntry(BaseModel):
    """Last redeemed transaction of a user."""
    model_config = ConfigDict(populate_by_name=True)

    uid: str
    transaction_id: str = Field(..., alias="transactionId")

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True)


class VerificationVerdict(BaseModel):
    """Outcome of a verification call returned to the app."""
    code: int
    message: str

    @classmethod
    def success(cls) -> "VerificationVerdict":
        return cls(code=200, message="")

    @classmethod
    def failure(cls, message: str) -> "VerificationVerdict":
        return cls(code=400, message=message)


class VerifyReceiptRequest(BaseModel):
    """Request model for the receipt verification endpoint."""
    uid: str = Field(..., min_length=1, description="Identity of the redeeming user")
    receipt_data: str = Field(..., min_length=1, description="Base64 encoded App Store receipt")
