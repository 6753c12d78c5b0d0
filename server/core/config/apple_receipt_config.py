"""Apple verifyReceipt configuration."""
import logfire

from server.core.config.general_config import Settings, settings


class AppleReceiptConfig:
    """Endpoints and status codes of Apple's verifyReceipt service."""

    SANDBOX_URL: str = "https://sandbox.itunes.apple.com/verifyReceipt"
    PRODUCTION_URL: str = "https://buy.itunes.apple.com/verifyReceipt"

    # Fixed layout of the textual expires_date field
    EXPIRES_DATE_LAYOUT: str = "%Y-%m-%d %H:%M:%S"

    STATUS_OK = 0
    STATUS_INVALID_JSON = 21000
    STATUS_MALFORMED_RECEIPT_DATA = 21002
    STATUS_RECEIPT_AUTHENTICATION = 21003
    STATUS_SHARED_SECRET_MISMATCH = 21004
    STATUS_RECEIPT_SERVER_DOWN = 21005
    STATUS_EXPIRED_SUBSCRIPTION = 21006
    # Sandbox receipt sent to the production validator
    STATUS_SANDBOX_RECEIPT = 21007
    STATUS_PRODUCTION_RECEIPT = 21008
    STATUS_UNAUTHORIZED_RECEIPT = 21010

    @classmethod
    def retry_url(cls, environment: str) -> str:
        """URL used for the single retry after a 21007 status."""
        if environment == "production":
            return cls.PRODUCTION_URL
        return cls.SANDBOX_URL

    @staticmethod
    def validate(config: Settings, strict: bool = False) -> None:
        """
        Validate that required configuration is set.

        Args:
            config: Settings instance to check
            strict: If True, raise exception on missing config. If False, only log warnings.
        """
        errors = []

        for name in ("APPLE_SHARED_SECRET", "APPLE_BUNDLE_ID"):
            if not getattr(config, name):
                msg = f"{name} is not set. Receipts cannot be verified without it."
                if strict:
                    errors.append(name)
                else:
                    logfire.warning(f"Warning: {msg}")

        if config.LEDGER_BACKEND == "supabase":
            for name in ("SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY"):
                if not getattr(config, name):
                    if strict:
                        errors.append(name)
                    else:
                        logfire.warning(f"Warning: {name} is not set but LEDGER_BACKEND is 'supabase'.")

        if strict and errors:
            raise ValueError(f"Missing required receipt verification configuration: {', '.join(errors)}")


# Validate configuration on module import (non-strict mode for development)
AppleReceiptConfig.validate(settings, strict=False)
