"""Per-protocol, per-network deployment tables and identity resolution.

All tables are immutable. ``resolve_network`` returns either a deployment
or an explicit ``Unsupported`` value; ``resolve_identity`` turns the latter
into a zero-address identity so processing can continue.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from protocol_metrics.constants import ZERO_ADDRESS, Network, ProtocolKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RewardConfig:
    """Reward token of a chef-style incentives controller.

    When ``pair_address`` is set the reward token is priced from that pair's
    reserves against ``base_token`` (priced by the protocol oracle);
    otherwise the protocol oracle prices the reward token directly.
    """

    token_address: str
    pair_address: str | None = None
    base_token: str | None = None


@dataclass(frozen=True)
class MarketplaceConfig:
    currency: str
    standard_sale_strategies: frozenset[str]
    any_item_from_collection_strategies: frozenset[str]
    private_sale_strategies: frozenset[str]


@dataclass(frozen=True)
class ProtocolMetadata:
    name: str
    slug: str
    kind: ProtocolKind
    schema_version: str
    subgraph_version: str
    methodology_version: str
    deployments: Mapping[Network, str]
    # Decimals of the price oracle's USD quote.
    oracle_decimals: int = 8
    rewards: RewardConfig | None = None
    marketplace: MarketplaceConfig | None = None


@dataclass(frozen=True)
class ProtocolDeployment:
    protocol_address: str
    network: str


@dataclass(frozen=True)
class Unsupported:
    network: str


@dataclass(frozen=True)
class ProtocolIdentity:
    """Everything a handler needs to create the protocol entity."""

    protocol_id: str
    name: str
    slug: str
    schema_version: str
    subgraph_version: str
    methodology_version: str
    network: str
    kind: ProtocolKind
    oracle_decimals: int = 8
    rewards: RewardConfig | None = None
    marketplace: MarketplaceConfig | None = None


WETH_ADDRESS = "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"

AAVE_V2 = ProtocolMetadata(
    name="Aave v2",
    slug="aave-v2",
    kind=ProtocolKind.LENDING,
    schema_version="2.0.1",
    subgraph_version="1.2.15",
    methodology_version="1.0.0",
    # LendingPoolAddressesProvider
    deployments=MappingProxyType(
        {
            Network.MAINNET: "0xb53c1a33016b2dc2ff3653530bff1848a515c8c5",
            Network.AVALANCHE: "0xb6a86025f0fe1862b372cb0ca18ce3ede02a318f",
            Network.MATIC: "0xd05e3e715d945b59290df0ae8ef85c1bdb684744",
        }
    ),
    oracle_decimals=8,
)

UWU_LEND = ProtocolMetadata(
    name="UwU Lend",
    slug="uwu-lend",
    kind=ProtocolKind.LENDING,
    schema_version="2.0.1",
    subgraph_version="1.0.0",
    methodology_version="1.0.0",
    deployments=MappingProxyType(
        {Network.MAINNET: "0x011c0d38da64b431a1bc3f8e5c5df1dd1f1dfdc3"}
    ),
    oracle_decimals=8,
    rewards=RewardConfig(
        token_address="0x55c08ca52497e2f1534b59e2917bf524d4765257",
        pair_address="0x3e04863dba602713bb5d0edbf7db7c3a9a2b6027",
        base_token=WETH_ADDRESS,
    ),
)

LOOKSRARE = ProtocolMetadata(
    name="LooksRare",
    slug="looksrare",
    kind=ProtocolKind.MARKETPLACE,
    schema_version="1.0.0",
    subgraph_version="1.0.0",
    methodology_version="1.0.0",
    deployments=MappingProxyType(
        {Network.MAINNET: "0x59728544b08ab483533076417fbbb2fd0b17ce3a"}
    ),
    marketplace=MarketplaceConfig(
        currency=WETH_ADDRESS,
        standard_sale_strategies=frozenset({"0x56244bb70cbd3ea9dc8007399f61dfc065190031"}),
        any_item_from_collection_strategies=frozenset({"0x86f909f70813cdb1bc733f4d97dc6b03b8e7e8f3"}),
        private_sale_strategies=frozenset({"0x58d83536d3efedb9f7f2a1ec3bdaad2b1a4dd98c"}),
    ),
)

PROTOCOLS: Mapping[str, ProtocolMetadata] = MappingProxyType(
    {protocol.slug: protocol for protocol in (AAVE_V2, UWU_LEND, LOOKSRARE)}
)


def _normalize_network(network_id: str) -> str:
    return network_id.replace("-", "_").lower()


def resolve_network(protocol: ProtocolMetadata, network_id: str) -> ProtocolDeployment | Unsupported:
    """Look up a protocol's deployment on a network."""
    wanted = _normalize_network(network_id)
    for network, address in protocol.deployments.items():
        if _normalize_network(network.value) == wanted:
            return ProtocolDeployment(protocol_address=address.lower(), network=network.value)
    return Unsupported(network=network_id)


def resolve_identity(protocol: ProtocolMetadata, network_id: str) -> ProtocolIdentity:
    """Resolve the identity handlers write under.

    An unsupported network is logged and degrades to the zero address with
    an empty network name; it never raises.
    """
    resolved = resolve_network(protocol, network_id)
    if isinstance(resolved, Unsupported):
        logger.error("Unsupported network for %s: %s", protocol.slug, resolved.network)
        deployment = ProtocolDeployment(protocol_address=ZERO_ADDRESS, network="")
    else:
        deployment = resolved

    return ProtocolIdentity(
        protocol_id=deployment.protocol_address,
        name=protocol.name,
        slug=protocol.slug,
        schema_version=protocol.schema_version,
        subgraph_version=protocol.subgraph_version,
        methodology_version=protocol.methodology_version,
        network=deployment.network,
        kind=protocol.kind,
        oracle_decimals=protocol.oracle_decimals,
        rewards=protocol.rewards,
        marketplace=protocol.marketplace,
    )


def get_protocol(slug: str) -> ProtocolMetadata:
    try:
        return PROTOCOLS[slug]
    except KeyError:
        raise ValueError(f"Unknown protocol: {slug}") from None
