"""Chain and vault deployment configuration.

Chain ids are opaque routing keys: each supported id maps to a display name,
an RPC endpoint (via settings) and the set of deployed contracts the
orchestrator talks to.
"""

from dataclasses import dataclass
from typing import Optional

NATIVE_TOKEN = "0x0000000000000000000000000000000000000000"
ZERO_ADDRESS = NATIVE_TOKEN

# Chain IDs
ETHEREUM_MAINNET = 1
ETHEREUM_SEPOLIA = 11155111
BASE_MAINNET = 8453
BASE_SEPOLIA = 84532
ARBITRUM_MAINNET = 42161
ARBITRUM_SEPOLIA = 421614
OPTIMISM_MAINNET = 10
OPTIMISM_SEPOLIA = 11155420

CHAIN_NAMES: dict[int, str] = {
    ETHEREUM_MAINNET: "Ethereum",
    ETHEREUM_SEPOLIA: "Ethereum Sepolia",
    BASE_MAINNET: "Base",
    BASE_SEPOLIA: "Base Sepolia",
    ARBITRUM_MAINNET: "Arbitrum",
    ARBITRUM_SEPOLIA: "Arbitrum Sepolia",
    OPTIMISM_MAINNET: "Optimism",
    OPTIMISM_SEPOLIA: "Optimism Sepolia",
}

L1_CHAINS = {ETHEREUM_MAINNET, ETHEREUM_SEPOLIA}
L2_CHAINS = {
    BASE_MAINNET,
    BASE_SEPOLIA,
    ARBITRUM_MAINNET,
    ARBITRUM_SEPOLIA,
    OPTIMISM_MAINNET,
    OPTIMISM_SEPOLIA,
}


@dataclass(frozen=True)
class Deployment:
    """Contracts deployed on one chain."""

    chain_id: int
    network: str
    vault: str  # CrashGuardCore
    dex_aggregator: Optional[str] = None
    uniswap_router: Optional[str] = None
    bridge: Optional[str] = None

    @property
    def has_vault(self) -> bool:
        return self.vault != ZERO_ADDRESS


DEPLOYMENTS: dict[int, Deployment] = {
    ARBITRUM_SEPOLIA: Deployment(
        chain_id=ARBITRUM_SEPOLIA,
        network="arbitrumSepolia",
        vault="0xecC8AaF4f40D47576Da9931e554e6F7df53c41CC",
        dex_aggregator="0x3d07101F65B172232fBd90811dA971904f837c7f",
        uniswap_router="0x101F443B4d1b059569D643917553c771E1b9663E",
        bridge="0x1D568B2a2f67Edb788DA111D153319001378Ee32",
    ),
    BASE_SEPOLIA: Deployment(
        chain_id=BASE_SEPOLIA,
        network="baseSepolia",
        vault="0x714CD1EBAfcD09d67B2605cE46b597876d3A0026",
        dex_aggregator="0x39B0d6d3d98Fc4e6Ec69feF97BBFca9A39AAEa6C",
        uniswap_router="0x2626664c2603336E57B271c5C0b26F421741e481",
    ),
    ETHEREUM_SEPOLIA: Deployment(
        chain_id=ETHEREUM_SEPOLIA,
        network="sepolia",
        vault=ZERO_ADDRESS,
        uniswap_router="0x3bFA4769FB09eefC5a80d6E87c3B9C650f7Ae48E",
    ),
}


def get_chain_name(chain_id: int) -> str:
    """Get human-readable chain name."""
    return CHAIN_NAMES.get(chain_id, f"Chain {chain_id}")


def get_deployment(chain_id: int) -> Optional[Deployment]:
    return DEPLOYMENTS.get(chain_id)


def get_vault_address(chain_id: int) -> Optional[str]:
    """Get the vault address for a chain, or None if no vault is deployed there."""
    deployment = get_deployment(chain_id)
    if deployment is None or not deployment.has_vault:
        return None
    return deployment.vault


def needs_cross_chain_operation(current_chain_id: int, target_chain_id: int) -> bool:
    return current_chain_id != target_chain_id


def get_supported_chains() -> list[int]:
    return [BASE_SEPOLIA, ARBITRUM_SEPOLIA, ETHEREUM_SEPOLIA, OPTIMISM_SEPOLIA]


def is_supported_chain(chain_id: int) -> bool:
    return chain_id in get_supported_chains()


def estimate_cross_chain_time(from_chain_id: int, to_chain_id: int) -> str:
    """Estimate bridge time for a route.

    L2 to L1 withdrawals are the slowest because of challenge periods.
    """
    if from_chain_id in L2_CHAINS and to_chain_id in L2_CHAINS:
        return "5-10 minutes"
    if from_chain_id in L1_CHAINS and to_chain_id in L2_CHAINS:
        return "10-15 minutes"
    if from_chain_id in L2_CHAINS and to_chain_id in L1_CHAINS:
        return "15-30 minutes"
    return "10-20 minutes"
