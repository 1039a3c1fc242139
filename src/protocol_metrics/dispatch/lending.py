"""Aave v2 lending pool, configurator and address provider events."""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from protocol_metrics.chain.reader import ContractReader
from protocol_metrics.dispatch.base import EventDispatcher, Route
from protocol_metrics.events import DecodedEvent
from protocol_metrics.handlers.lending import LendingHandlers
from protocol_metrics.networks import ProtocolIdentity
from protocol_metrics.storage.store import EntityStore


class LendingDispatcher(EventDispatcher):
    """Routes events by their ABI names to ``LendingHandlers``."""

    def __init__(self, store: EntityStore, reader: ContractReader) -> None:
        super().__init__(store)
        self._handlers = LendingHandlers(store, reader)
        self._routes: Mapping[str, Route] = MappingProxyType(
            {
                "PriceOracleUpdated": self._on_price_oracle_updated,
                "ReserveInitialized": self._on_reserve_initialized,
                "CollateralConfigurationChanged": self._on_collateral_configuration_changed,
                "BorrowingEnabledOnReserve": self._on_borrowing_enabled,
                "BorrowingDisabledOnReserve": self._on_borrowing_disabled,
                "ReserveActivated": self._on_reserve_activated,
                "ReserveDeactivated": self._on_reserve_deactivated,
                "ReserveFrozen": self._on_reserve_frozen,
                "ReserveUnfrozen": self._on_reserve_unfrozen,
                "ReserveFactorChanged": self._on_reserve_factor_changed,
                "Paused": self._on_paused,
                "Unpaused": self._on_unpaused,
                "ReserveDataUpdated": self._on_reserve_data_updated,
                "Deposit": self._on_deposit,
                "Withdraw": self._on_withdraw,
                "Borrow": self._on_borrow,
                "Repay": self._on_repay,
                "LiquidationCall": self._on_liquidation_call,
            }
        )

    @property
    def routes(self) -> Mapping[str, Route]:
        return self._routes

    def _on_price_oracle_updated(self, event: DecodedEvent, identity: ProtocolIdentity) -> None:
        self._handlers.price_oracle_updated(identity, event.address_param("newAddress"))

    def _on_reserve_initialized(self, event: DecodedEvent, identity: ProtocolIdentity) -> None:
        self._handlers.reserve_initialized(
            identity,
            event.context,
            asset=event.address_param("asset"),
            a_token=event.address_param("aToken"),
            stable_debt_token=event.params.get("stableDebtToken"),
            variable_debt_token=event.params.get("variableDebtToken"),
        )

    def _on_collateral_configuration_changed(self, event: DecodedEvent, identity: ProtocolIdentity) -> None:
        self._handlers.collateral_configuration_changed(
            identity,
            event.context,
            asset=event.address_param("asset"),
            ltv=event.int_param("ltv"),
            liquidation_threshold=event.int_param("liquidationThreshold"),
            liquidation_bonus=event.int_param("liquidationBonus"),
        )

    def _on_borrowing_enabled(self, event: DecodedEvent, identity: ProtocolIdentity) -> None:
        self._handlers.borrowing_enabled(identity, event.context, asset=event.address_param("asset"))

    def _on_borrowing_disabled(self, event: DecodedEvent, identity: ProtocolIdentity) -> None:
        self._handlers.borrowing_disabled(identity, event.context, asset=event.address_param("asset"))

    def _on_reserve_activated(self, event: DecodedEvent, identity: ProtocolIdentity) -> None:
        self._handlers.reserve_activated(identity, event.context, asset=event.address_param("asset"))

    def _on_reserve_deactivated(self, event: DecodedEvent, identity: ProtocolIdentity) -> None:
        self._handlers.reserve_deactivated(identity, event.context, asset=event.address_param("asset"))

    def _on_reserve_frozen(self, event: DecodedEvent, identity: ProtocolIdentity) -> None:
        self._handlers.reserve_frozen(identity, event.context, asset=event.address_param("asset"))

    def _on_reserve_unfrozen(self, event: DecodedEvent, identity: ProtocolIdentity) -> None:
        self._handlers.reserve_unfrozen(identity, event.context, asset=event.address_param("asset"))

    def _on_reserve_factor_changed(self, event: DecodedEvent, identity: ProtocolIdentity) -> None:
        self._handlers.reserve_factor_changed(
            identity,
            event.context,
            asset=event.address_param("asset"),
            factor=event.int_param("factor"),
        )

    def _on_paused(self, event: DecodedEvent, identity: ProtocolIdentity) -> None:
        self._handlers.paused(identity)

    def _on_unpaused(self, event: DecodedEvent, identity: ProtocolIdentity) -> None:
        self._handlers.unpaused(identity)

    def _on_reserve_data_updated(self, event: DecodedEvent, identity: ProtocolIdentity) -> None:
        self._handlers.reserve_data_updated(
            identity,
            event.context,
            reserve=event.address_param("reserve"),
            liquidity_rate=event.int_param("liquidityRate"),
            stable_borrow_rate=event.int_param("stableBorrowRate"),
            variable_borrow_rate=event.int_param("variableBorrowRate"),
            liquidity_index=event.int_param("liquidityIndex"),
            variable_borrow_index=event.int_param("variableBorrowIndex"),
        )

    def _on_deposit(self, event: DecodedEvent, identity: ProtocolIdentity) -> None:
        self._handlers.deposit(
            identity,
            event.context,
            reserve=event.address_param("reserve"),
            account=event.address_param("onBehalfOf"),
            amount=event.int_param("amount"),
        )

    def _on_withdraw(self, event: DecodedEvent, identity: ProtocolIdentity) -> None:
        self._handlers.withdraw(
            identity,
            event.context,
            reserve=event.address_param("reserve"),
            account=event.address_param("to"),
            amount=event.int_param("amount"),
        )

    def _on_borrow(self, event: DecodedEvent, identity: ProtocolIdentity) -> None:
        self._handlers.borrow(
            identity,
            event.context,
            reserve=event.address_param("reserve"),
            account=event.address_param("onBehalfOf"),
            amount=event.int_param("amount"),
        )

    def _on_repay(self, event: DecodedEvent, identity: ProtocolIdentity) -> None:
        self._handlers.repay(
            identity,
            event.context,
            reserve=event.address_param("reserve"),
            account=event.address_param("user"),
            amount=event.int_param("amount"),
        )

    def _on_liquidation_call(self, event: DecodedEvent, identity: ProtocolIdentity) -> None:
        self._handlers.liquidation(
            identity,
            event.context,
            collateral_asset=event.address_param("collateralAsset"),
            debt_asset=event.address_param("debtAsset"),
            liquidator=event.address_param("liquidator"),
            borrower=event.address_param("user"),
            liquidated_collateral_amount=event.int_param("liquidatedCollateralAmount"),
            debt_to_cover=int(event.params.get("debtToCover", 0)),
        )
