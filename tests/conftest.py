import pytest

from fake_chain import ADMIN, ALICE, BOB, CHARLIE, FakeChain, FakeSigner
from presale_sdk import PresaleSDK
from variants import ALLOCATED, REPUTATION


@pytest.fixture
def alice():
    return FakeSigner(ALICE)


@pytest.fixture
def bob():
    return FakeSigner(BOB)


@pytest.fixture
def charlie():
    return FakeSigner(CHARLIE)


@pytest.fixture
def admin():
    return FakeSigner(ADMIN)


@pytest.fixture
def allocated_chain():
    return FakeChain(ALLOCATED)


@pytest.fixture
def reputation_chain():
    return FakeChain(REPUTATION)


@pytest.fixture
def allocated_sdk(allocated_chain):
    return PresaleSDK(allocated_chain)


@pytest.fixture
def reputation_sdk(reputation_chain):
    return PresaleSDK(reputation_chain)
