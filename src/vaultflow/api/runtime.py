"""Process-wide service wiring for the API."""

import logging
from typing import Optional

from fastapi import Request

from vaultflow.config import Settings, get_settings
from vaultflow.operations.factory import (
    create_balance_reader,
    create_delegated_services,
    create_operation_set,
    create_primary_wallet,
)
from vaultflow.orchestrator.executor import StepExecutor
from vaultflow.orchestrator.funding import RelayWalletFundingGuard
from vaultflow.orchestrator.service import VaultOperationService
from vaultflow.services.base import BalanceReader, PrimaryWallet
from vaultflow.session import CredentialVerifier, Session

logger = logging.getLogger(__name__)


class OperationRuntime:
    """Shared services; builds a VaultOperationService per session."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        balance_reader: Optional[BalanceReader] = None,
        primary_wallet: Optional[PrimaryWallet] = None,
    ):
        self.settings = settings or get_settings()
        self.balance_reader = balance_reader or create_balance_reader(self.settings)
        self.primary_wallet = primary_wallet or create_primary_wallet(self.settings, self.balance_reader)
        self.funding_guard = RelayWalletFundingGuard(
            self.balance_reader, self.primary_wallet, self.settings
        )
        self.verifier = CredentialVerifier.from_settings(self.settings)
        if self.verifier.key is None:
            logger.warning("No credential verification key configured; operation requests will be rejected")
        logger.info(
            f"Operation runtime ready (dry_run={self.settings.dry_run}, "
            f"wallet={self.primary_wallet.address})"
        )

    def authenticate(self, token: str) -> Session:
        """Verify a bearer credential and build its session."""
        return Session.from_jwt(token, self.verifier)

    def service_for(self, session: Session) -> VaultOperationService:
        services = create_delegated_services(session, self.settings)
        operations = create_operation_set(services, self.primary_wallet, self.balance_reader, self.settings)
        executor = StepExecutor(operations, self.funding_guard, self.settings)
        return VaultOperationService(
            executor=executor,
            funding_guard=self.funding_guard,
            owner_address=self.primary_wallet.address,
            settings=self.settings,
        )


def get_runtime(request: Request) -> OperationRuntime:
    return request.app.state.runtime
