"""Load-or-create helpers shared by the lending and marketplace handlers."""

from __future__ import annotations

import logging

from web3.types import BlockIdentifier

from protocol_metrics.chain.reader import ContractReader
from protocol_metrics.constants import DEFAULT_DECIMALS
from protocol_metrics.networks import ProtocolIdentity
from protocol_metrics.storage.entities import LendingProtocol, Marketplace, Token
from protocol_metrics.storage.store import EntityStore

logger = logging.getLogger(__name__)


def get_or_create_token(
    store: EntityStore,
    reader: ContractReader,
    address: str,
    *,
    block_identifier: BlockIdentifier | None = None,
) -> Token:
    """Load a token, resolving its ERC-20 metadata on first sight.

    Metadata is read at ``block_identifier``. Failed reads keep the defaults
    (``"unknown"`` and 18 decimals).
    """
    address = address.lower()
    token = store.load(Token, address)
    if token is not None:
        return token

    token = Token(id=address)
    name = reader.try_call(address, "name", block_identifier=block_identifier)
    if not name.reverted:
        token.name = str(name.value)
    symbol = reader.try_call(address, "symbol", block_identifier=block_identifier)
    if not symbol.reverted:
        token.symbol = str(symbol.value)
    decimals = reader.try_call(address, "decimals", block_identifier=block_identifier)
    if decimals.reverted:
        logger.warning("Failed to read decimals of %s; assuming %d", address, DEFAULT_DECIMALS)
    else:
        token.decimals = int(decimals.value)

    store.save(token)
    return token


def get_or_create_lending_protocol(store: EntityStore, identity: ProtocolIdentity) -> LendingProtocol:
    protocol = store.load(LendingProtocol, identity.protocol_id)
    if protocol is None:
        protocol = LendingProtocol(
            id=identity.protocol_id,
            name=identity.name,
            slug=identity.slug,
            schema_version=identity.schema_version,
            subgraph_version=identity.subgraph_version,
            methodology_version=identity.methodology_version,
            network=identity.network,
        )
        logger.info("Created lending protocol %s (%s)", identity.slug, identity.protocol_id)
        store.save(protocol)
    return protocol


def get_or_create_marketplace(store: EntityStore, identity: ProtocolIdentity) -> Marketplace:
    marketplace = store.load(Marketplace, identity.protocol_id)
    if marketplace is None:
        marketplace = Marketplace(
            id=identity.protocol_id,
            name=identity.name,
            slug=identity.slug,
            schema_version=identity.schema_version,
            subgraph_version=identity.subgraph_version,
            methodology_version=identity.methodology_version,
            network=identity.network,
        )
        logger.info("Created marketplace %s (%s)", identity.slug, identity.protocol_id)
        store.save(marketplace)
    return marketplace
