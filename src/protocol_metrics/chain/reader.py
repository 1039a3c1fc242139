"""Read-only contract calls that never raise.

Every read returns a ``CallResult``; callers branch on ``reverted``. A
revert or undecodable output is final, a transport failure on the primary
RPC is retried once against the fallback RPC when one is configured.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from web3 import Web3
from web3.contract import Contract
from web3.exceptions import BadFunctionCallOutput, ContractLogicError, Web3Exception
from web3.types import BlockIdentifier

from protocol_metrics.chain.abis import FUNCTION_ABIS

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 30


@dataclass(frozen=True)
class CallResult:
    """Outcome of a contract read."""

    reverted: bool
    value: Any = None

    @classmethod
    def ok(cls, value: Any) -> CallResult:
        return cls(reverted=False, value=value)

    @classmethod
    def failed(cls) -> CallResult:
        return cls(reverted=True)


class ContractReader:
    """Synchronous contract reader with optional RPC failover.

    Example:
        ```python
        reader = ContractReader.from_rpc_url("https://eth.llamarpc.com")
        result = reader.try_call(oracle_address, "getAssetPrice", [asset])
        if not result.reverted:
            price = result.value
        ```
    """

    def __init__(self, web3: Web3, *, fallback_web3: Web3 | None = None) -> None:
        self._clients = [web3] if fallback_web3 is None else [web3, fallback_web3]
        self._contracts: dict[tuple[int, str, str], Contract] = {}

    @classmethod
    def from_rpc_url(
        cls,
        rpc_url: str,
        *,
        fallback_rpc_url: str | None = None,
        timeout_seconds: int = DEFAULT_REQUEST_TIMEOUT,
    ) -> ContractReader:
        def client(url: str) -> Web3:
            return Web3(Web3.HTTPProvider(url, request_kwargs={"timeout": timeout_seconds}))

        fallback = client(fallback_rpc_url) if fallback_rpc_url else None
        return cls(client(rpc_url), fallback_web3=fallback)

    def _contract(self, client_index: int, address: str, method: str) -> Contract:
        cache_key = (client_index, address.lower(), method)
        contract = self._contracts.get(cache_key)
        if contract is None:
            contract = self._clients[client_index].eth.contract(
                address=Web3.to_checksum_address(address),
                abi=[FUNCTION_ABIS[method]],
            )
            self._contracts[cache_key] = contract
        return contract

    def try_call(
        self,
        address: str,
        method: str,
        args: Sequence[Any] = (),
        *,
        block_identifier: BlockIdentifier | None = None,
    ) -> CallResult:
        """Call a view function, returning a reverted result on any failure."""
        if method not in FUNCTION_ABIS:
            raise KeyError(f"No ABI registered for {method}")

        for client_index in range(len(self._clients)):
            try:
                function = self._contract(client_index, address, method).functions[method](*args)
                if block_identifier is None:
                    value = function.call()
                else:
                    value = function.call(block_identifier=block_identifier)
                return CallResult.ok(value)
            except (ContractLogicError, BadFunctionCallOutput, ValueError) as e:
                logger.debug("Call %s on %s reverted: %s", method, address, e)
                return CallResult.failed()
            except (Web3Exception, OSError) as e:
                logger.warning(
                    "RPC %d failed for %s on %s: %s",
                    client_index,
                    method,
                    address,
                    e,
                )

        return CallResult.failed()
