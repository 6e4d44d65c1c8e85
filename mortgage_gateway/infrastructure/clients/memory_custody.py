"""In-process escrow ledger implementing the custody adapter"""

import logging
import threading
from collections import defaultdict
from contextlib import contextmanager
from copy import deepcopy
from typing import DefaultDict, Dict, Iterator

from mortgage_gateway.domain.exceptions import CustodyTransferFailed
from mortgage_gateway.domain.models import AssetDescriptor, AssetKind


class InMemoryCustody:
    """
    Escrow ledger kept in memory: value balances per account and asset
    holdings per asset key.

    Value handed to `accept_value` arrives with the call (like funds attached
    to a payment), so it is credited to escrow without debiting the payer;
    the amount is tracked in `received`. Everything leaving escrow must be
    covered by its balance.

    With `assume_external_holdings`, an asset the ledger has never seen is
    taken to be held by whoever it is pulled from.
    """

    def __init__(self, assume_external_holdings: bool = False):
        self.assume_external_holdings = assume_external_holdings
        self.balances: DefaultDict[str, int] = defaultdict(int)
        self.received: DefaultDict[str, int] = defaultdict(int)
        self.holdings: DefaultDict[str, Dict[str, int]] = defaultdict(dict)
        self._lock = threading.RLock()
        self._depth = 0

    # Ledger setup and inspection

    def deposit_asset(self, asset: AssetDescriptor, holder: str) -> None:
        """Record that `holder` owns the asset before any loan touches it"""
        with self._lock:
            self._credit_asset(asset, holder)

    def asset_balance(self, asset: AssetDescriptor, holder: str) -> int:
        return self.holdings[asset.key].get(holder, 0)

    def holder_of(self, asset: AssetDescriptor) -> str | None:
        """Current holder of a unique asset"""
        for holder, quantity in self.holdings[asset.key].items():
            if quantity > 0:
                return holder
        return None

    # Custody adapter

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Restore balances and holdings if anything inside the block raises"""
        with self._lock:
            snapshot = None
            if self._depth == 0:
                snapshot = (deepcopy(self.balances), deepcopy(self.received), deepcopy(self.holdings))
            self._depth += 1
            try:
                yield
            except Exception:
                if snapshot is not None:
                    self.balances, self.received, self.holdings = snapshot
                    logging.warning("Custody batch rolled back")
                raise
            finally:
                self._depth -= 1

    def pull_asset(self, asset: AssetDescriptor, from_party: str, into: str) -> None:
        with self._lock:
            if self.assume_external_holdings and not self.holdings[asset.key]:
                self._credit_asset(asset, from_party)
            self._debit_asset(asset, from_party)
            self._credit_asset(asset, into)

    def release_asset(self, asset: AssetDescriptor, to: str, escrow: str) -> None:
        with self._lock:
            self._debit_asset(asset, escrow)
            self._credit_asset(asset, to)

    def accept_value(self, from_party: str, amount: int, escrow: str) -> None:
        if amount < 0:
            raise CustodyTransferFailed(f"Cannot accept negative amount {amount}")
        with self._lock:
            self.received[from_party] += amount
            self.balances[escrow] += amount

    def pay_out(self, to: str, amount: int, escrow: str) -> None:
        if amount < 0:
            raise CustodyTransferFailed(f"Cannot pay out negative amount {amount}")
        with self._lock:
            if self.balances[escrow] < amount:
                raise CustodyTransferFailed(
                    f"Escrow {escrow} holds {self.balances[escrow]}, cannot pay {amount} to {to}"
                )
            self.balances[escrow] -= amount
            self.balances[to] += amount

    # Internals

    def _units(self, asset: AssetDescriptor) -> int:
        return asset.quantity if asset.kind == AssetKind.FUNGIBLE else 1

    def _credit_asset(self, asset: AssetDescriptor, holder: str) -> None:
        held = self.holdings[asset.key]
        held[holder] = held.get(holder, 0) + self._units(asset)

    def _debit_asset(self, asset: AssetDescriptor, holder: str) -> None:
        held = self.holdings[asset.key]
        units = self._units(asset)
        if held.get(holder, 0) < units:
            raise CustodyTransferFailed(f"{holder} does not hold {units} of {asset.key}")
        held[holder] -= units
        if held[holder] == 0:
            del held[holder]
