"""ABI fragments for every contract function the engine reads.

Functions are keyed by name; overloaded or conflicting names are not
allowed so that a read is fully described by (address, method, args).
"""

from __future__ import annotations

from typing import Any


def _view(name: str, inputs: list[tuple[str, str]], outputs: list[tuple[str, str]]) -> dict[str, Any]:
    return {
        "constant": True,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "name": name,
        "outputs": [{"name": n, "type": t} for n, t in outputs],
        "stateMutability": "view",
        "type": "function",
    }


FUNCTION_ABIS: dict[str, dict[str, Any]] = {
    # ERC-20 / ERC-721 metadata
    "name": _view("name", [], [("", "string")]),
    "symbol": _view("symbol", [], [("", "string")]),
    "decimals": _view("decimals", [], [("", "uint8")]),
    "totalSupply": _view("totalSupply", [], [("", "uint256")]),
    # ERC-165
    "supportsInterface": _view("supportsInterface", [("interfaceId", "bytes4")], [("", "bool")]),
    # Aave price oracle
    "getAssetPrice": _view("getAssetPrice", [("asset", "address")], [("", "uint256")]),
    "getFallbackOracle": _view("getFallbackOracle", [], [("", "address")]),
    # Aave aToken
    "getIncentivesController": _view("getIncentivesController", [], [("", "address")]),
    # Chef-style incentives controller
    "poolInfo": _view(
        "poolInfo",
        [("", "address")],
        [
            ("totalSupply", "uint256"),
            ("allocPoint", "uint256"),
            ("lastRewardTime", "uint256"),
            ("accRewardPerShare", "uint256"),
            ("onwardIncentives", "address"),
        ],
    ),
    "totalAllocPoint": _view("totalAllocPoint", [], [("", "uint256")]),
    "rewardsPerSecond": _view("rewardsPerSecond", [], [("", "uint256")]),
    # Uniswap v2 style pair
    "getReserves": _view(
        "getReserves",
        [],
        [("reserve0", "uint112"), ("reserve1", "uint112"), ("blockTimestampLast", "uint32")],
    ),
    "token0": _view("token0", [], [("", "address")]),
    # LooksRare execution strategy
    "viewProtocolFee": _view("viewProtocolFee", [], [("", "uint256")]),
}

# Index of allocPoint in the poolInfo output tuple.
POOL_INFO_ALLOC_POINT_INDEX = 1
