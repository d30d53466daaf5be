"""Tests for chain and deployment lookups."""

import pytest

from vaultflow.chains import (
    ARBITRUM_SEPOLIA,
    BASE_SEPOLIA,
    ETHEREUM_SEPOLIA,
    OPTIMISM_SEPOLIA,
    estimate_cross_chain_time,
    get_chain_name,
    get_vault_address,
    is_supported_chain,
    needs_cross_chain_operation,
)


class TestChains:
    def test_chain_names(self):
        assert get_chain_name(BASE_SEPOLIA) == "Base Sepolia"
        assert get_chain_name(999) == "Chain 999"

    def test_supported_chains(self):
        assert is_supported_chain(ARBITRUM_SEPOLIA)
        assert not is_supported_chain(999)

    def test_vault_deployments(self):
        assert get_vault_address(BASE_SEPOLIA) is not None
        # Ethereum Sepolia has routers but no vault
        assert get_vault_address(ETHEREUM_SEPOLIA) is None
        assert get_vault_address(OPTIMISM_SEPOLIA) is None

    def test_cross_chain(self):
        assert needs_cross_chain_operation(ARBITRUM_SEPOLIA, BASE_SEPOLIA)
        assert not needs_cross_chain_operation(BASE_SEPOLIA, BASE_SEPOLIA)

    @pytest.mark.parametrize("origin,destination,expected", [
        (ARBITRUM_SEPOLIA, BASE_SEPOLIA, "5-10 minutes"),
        (ETHEREUM_SEPOLIA, BASE_SEPOLIA, "10-15 minutes"),
        (BASE_SEPOLIA, ETHEREUM_SEPOLIA, "15-30 minutes"),
        (ETHEREUM_SEPOLIA, 999, "10-20 minutes"),
    ])
    def test_bridge_time_estimates(self, origin, destination, expected):
        assert estimate_cross_chain_time(origin, destination) == expected
