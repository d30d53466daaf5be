"""Pytest configuration and fixtures."""

import base64
import json
import os
import time
from decimal import Decimal

import pytest
from authlib.jose import JsonWebToken

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DRY_RUN"] = "true"
os.environ["DEBUG"] = "true"

from vaultflow.chains import ARBITRUM_SEPOLIA, BASE_SEPOLIA
from vaultflow.config import Settings
from vaultflow.operations.factory import DelegatedServices, create_operation_set
from vaultflow.orchestrator.executor import StepExecutor
from vaultflow.orchestrator.funding import RelayWalletFundingGuard
from vaultflow.orchestrator.models import Asset
from vaultflow.services.dry_run import (
    DryRunBalanceReader,
    DryRunBridgeService,
    DryRunBridgeStatus,
    DryRunDexService,
    DryRunPrimaryWallet,
    DryRunTransferService,
    DryRunVaultService,
)
from vaultflow.session import (
    ABILITY_BRIDGE,
    ABILITY_CONTRACT,
    ABILITY_SWAP,
    ABILITY_TRANSFER,
    CredentialVerifier,
    Session,
)
from vaultflow.utils.locks import clear_relay_locks

RELAY_ADDRESS = "0x" + "ab" * 20
OWNER_ADDRESS = "0x" + "cd" * 20
USDC_ADDRESS = "0x" + "1c" * 20

TEST_APP_ID = "vaultflow-test"
TEST_CREDENTIAL_KEY = "test-credential-secret"

ALL_ABILITIES = [ABILITY_SWAP, ABILITY_BRIDGE, ABILITY_TRANSFER, ABILITY_CONTRACT]


def make_jwt(payload: dict, key: str = TEST_CREDENTIAL_KEY) -> str:
    """HS256 JWT signed with the test credential key."""
    return JsonWebToken(["HS256"]).encode({"alg": "HS256", "typ": "JWT"}, payload, key).decode()


def make_unsigned_jwt(payload: dict) -> str:
    """JWT with ``alg: none`` and a junk signature."""
    def segment(data: dict) -> str:
        raw = json.dumps(data).encode()
        return base64.urlsafe_b64encode(raw).decode().rstrip("=")

    return f"{segment({'alg': 'none', 'typ': 'JWT'})}.{segment(payload)}.signature"


def make_session(
    address: str = RELAY_ADDRESS,
    expires_in: float = 3600,
    permissions=None,
) -> Session:
    token = make_jwt({
        "pkpAddress": address,
        "exp": int(time.time() + expires_in),
        "permissions": ALL_ABILITIES if permissions is None else permissions,
        "aud": TEST_APP_ID,
    })
    return Session.from_claims(make_verifier().verify(token, now=0), token)


def make_verifier() -> CredentialVerifier:
    return CredentialVerifier(TEST_CREDENTIAL_KEY, "HS256", TEST_APP_ID)


@pytest.fixture(autouse=True)
def reset_locks():
    """Clear relay wallet locks before each test."""
    clear_relay_locks()
    yield
    clear_relay_locks()


@pytest.fixture
def settings() -> Settings:
    """Settings with all waits disabled."""
    return Settings(
        dry_run=True,
        vault_chain_id=BASE_SEPOLIA,
        funding_interval_same_chain=0,
        funding_interval_cross_chain=0,
        transfer_settle_seconds=0,
        bridge_settle_seconds=0,
        bridge_status_interval=0,
        operation_timeout_seconds=5,
        relay_lock_timeout_seconds=0,
        app_id=TEST_APP_ID,
        credential_verification_key=TEST_CREDENTIAL_KEY,
        credential_algorithm="HS256",
    )


@pytest.fixture
def session() -> Session:
    return make_session()


@pytest.fixture
def usdc() -> Asset:
    return Asset(address=USDC_ADDRESS, symbol="USDC", decimals=6)


@pytest.fixture
def eth() -> Asset:
    return Asset.native()


@pytest.fixture
def balances() -> DryRunBalanceReader:
    return DryRunBalanceReader()


@pytest.fixture
def wallet(balances) -> DryRunPrimaryWallet:
    return DryRunPrimaryWallet(balances, address=OWNER_ADDRESS)


@pytest.fixture
def services() -> DelegatedServices:
    return DelegatedServices(
        dex=DryRunDexService(),
        bridge=DryRunBridgeService(),
        transfer=DryRunTransferService(),
        vault=DryRunVaultService(),
        bridge_status=DryRunBridgeStatus(),
    )


@pytest.fixture
def funding_guard(balances, wallet, settings) -> RelayWalletFundingGuard:
    return RelayWalletFundingGuard(balances, wallet, settings)


@pytest.fixture
def executor(services, wallet, balances, funding_guard, settings) -> StepExecutor:
    operations = create_operation_set(services, wallet, balances, settings)
    return StepExecutor(operations, funding_guard, settings)


@pytest.fixture
def underfunded_relay(balances):
    """Relay wallet below the minimum balance on both test chains."""
    for chain_id in (BASE_SEPOLIA, ARBITRUM_SEPOLIA):
        balances.set_balance(RELAY_ADDRESS, chain_id, 0)
    return balances


@pytest.fixture
def funded_relay(balances):
    for chain_id in (BASE_SEPOLIA, ARBITRUM_SEPOLIA):
        balances.set_balance(RELAY_ADDRESS, chain_id, int(Decimal("0.05") * 10**18))
    return balances

