"""
Shared fixtures for the Capsule Coin test suite.

Keys are deterministic so failures reproduce. The vault key receives the
entire supply cap at deployment.
"""

import pytest

from capsulecoin.core.chain import Chain
from capsulecoin.core.crypto import ClaimKeyManager
from capsulecoin.ledger.ledger import ReplayLedger
from capsulecoin.settlement.engine import SettlementEngine
from capsulecoin.token.token import CapsuleToken


HARDHAT_MNEMONIC = "test test test test test test test test test test test junk"
HARDHAT_ACCOUNT_0 = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
HARDHAT_ACCOUNT_1 = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"

DESTINATION = "0x000000000000000000000000000000000000dEaD"


@pytest.fixture
def vault_key():
    """Issuer key that holds the whole supply after deploy."""
    return ClaimKeyManager.from_private_key("0x" + "11" * 32)


@pytest.fixture
def other_key():
    """A second independent key with no balance."""
    return ClaimKeyManager.from_private_key("0x" + "22" * 32)


@pytest.fixture
def token(vault_key):
    return CapsuleToken.deploy(vault_key.address)


@pytest.fixture
def chain():
    return Chain(height=1_000, timestamp=1_700_000_000)


@pytest.fixture
def engine(token, chain):
    return SettlementEngine(token, chain, ReplayLedger())


def sign_claim(key, destination, amount, valid_from_block, nonce, issuer=None):
    """Helper: sign a claim and return (signature, args) ready for settlement."""
    issuer = issuer or key.address
    digest = SettlementEngine.hash_for_claim(
        issuer, destination, amount, valid_from_block, nonce
    )
    signature = key.sign_claim_hash(digest)
    return signature, (issuer, destination, amount, valid_from_block, nonce)
