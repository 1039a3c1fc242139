"""Protocol Metrics - event-to-entity aggregation for DeFi and NFT protocols."""

__version__ = "0.1.0"
