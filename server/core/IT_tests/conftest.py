import logfire
import pytest

from receipt_fixtures import BUNDLE_ID, SHARED_SECRET, AppleStub, FakeSupabase
from server.core.service.receipt_verification.redemption_ledger import InMemoryRedemptionLedger

logfire.configure(send_to_logfire=False, console=False)


@pytest.fixture
def ledger():
    return InMemoryRedemptionLedger()


@pytest.fixture
def fake_supabase():
    return FakeSupabase()


@pytest.fixture
def bundle_id():
    return BUNDLE_ID


@pytest.fixture
def shared_secret():
    return SHARED_SECRET


@pytest.fixture
def apple_stub():
    """Factory for an AppleStub with queued replies."""
    def make(*replies):
        return AppleStub(*replies)
    return make
