"""USD price resolution through Aave-style price oracles.

Prices are never cached. Callers pass the block of the event being
processed so every read reflects the chain state at that block.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from web3.types import BlockIdentifier

from protocol_metrics.chain.reader import ContractReader
from protocol_metrics.constants import BIGDECIMAL_ZERO, ZERO_ADDRESS, to_units

logger = logging.getLogger(__name__)


class PriceOracleResolver:
    """Resolve token prices with a single fallback hop.

    Example:
        ```python
        resolver = PriceOracleResolver(reader, oracle_decimals=8)
        price = resolver.resolve_price(weth, protocol.price_oracle)
        ```
    """

    def __init__(self, reader: ContractReader, *, oracle_decimals: int = 8) -> None:
        self._reader = reader
        self._oracle_decimals = oracle_decimals

    def resolve_price(
        self, token: str, oracle: str, *, block_identifier: BlockIdentifier | None = None
    ) -> Decimal:
        """Return the USD price of ``token``, or zero if no oracle answers.

        The primary oracle is asked first. A revert or a non-positive answer
        makes the resolver read ``getFallbackOracle`` from the primary and
        ask that oracle once. No further fallbacks are attempted.

        Args:
            token: Asset address.
            oracle: Primary price oracle address.
            block_identifier: Block to read at; the chain head when omitted.

        Returns:
            Price in USD, scaled down by the oracle's quote decimals.
        """
        if oracle == ZERO_ADDRESS:
            logger.warning("No price oracle set; pricing %s at zero", token)
            return BIGDECIMAL_ZERO

        raw = self._asset_price(oracle, token, block_identifier)
        if raw <= 0:
            fallback = self._reader.try_call(oracle, "getFallbackOracle", block_identifier=block_identifier)
            if fallback.reverted:
                logger.warning("Oracle %s has no fallback; pricing %s at zero", oracle, token)
                return BIGDECIMAL_ZERO
            raw = self._asset_price(str(fallback.value), token, block_identifier)

        if raw <= 0:
            logger.warning("No oracle price for %s", token)
            return BIGDECIMAL_ZERO
        return to_units(raw, self._oracle_decimals)

    def resolve_pair_price(
        self,
        pair: str,
        token: str,
        base_token: str,
        oracle: str,
        *,
        token_decimals: int,
        base_decimals: int,
        block_identifier: BlockIdentifier | None = None,
    ) -> Decimal:
        """Price ``token`` from a two-token AMM pair against ``base_token``.

        ``price = base_price * base_reserve / token_reserve`` with both
        reserves normalized by their token decimals. Zero reserves or a
        reverted read price the token at zero.
        """
        reserves = self._reader.try_call(pair, "getReserves", block_identifier=block_identifier)
        token0 = self._reader.try_call(pair, "token0", block_identifier=block_identifier)
        if reserves.reverted or token0.reverted:
            logger.warning("Failed to read reserves of pair %s", pair)
            return BIGDECIMAL_ZERO

        reserve0, reserve1 = int(reserves.value[0]), int(reserves.value[1])
        if str(token0.value).lower() == token.lower():
            token_reserve, base_reserve = reserve0, reserve1
        else:
            token_reserve, base_reserve = reserve1, reserve0

        if token_reserve == 0 or base_reserve == 0:
            logger.warning("Pair %s has an empty reserve", pair)
            return BIGDECIMAL_ZERO

        base_price = self.resolve_price(base_token, oracle, block_identifier=block_identifier)
        return base_price * to_units(base_reserve, base_decimals) / to_units(token_reserve, token_decimals)

    def _asset_price(self, oracle: str, token: str, block_identifier: BlockIdentifier | None) -> int:
        result = self._reader.try_call(oracle, "getAssetPrice", [token], block_identifier=block_identifier)
        if result.reverted:
            return 0
        return int(result.value)
