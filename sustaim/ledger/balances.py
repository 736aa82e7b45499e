"""
Balance Store: per-holder, per-batch unit balances.

The ledger consumes this store through three primitives only:
`issue_units`, `retire_units` and `balance_of`. Owners may also move their
own units with `transfer`; there is no delegated (on-behalf) transfer.

Holders may register a receive hook. It is called after units land in the
holder's balance; if it raises, the credit is undone and the error
propagates to whoever initiated the movement.
"""

from __future__ import annotations

import logging
from typing import Callable

from sustaim.ledger.errors import InsufficientBalance, InvalidArgument, Unauthorized

logger = logging.getLogger(__name__)

# (operator, sender or None for issuance, batch_id, amount)
ReceiveHook = Callable[[str, str | None, int, int], None]


class BalanceStore:
    """In-memory multi-batch balance table."""

    def __init__(self) -> None:
        self._balances: dict[str, dict[int, int]] = {}
        self._hooks: dict[str, ReceiveHook] = {}

    def register_receive_hook(self, owner: str, hook: ReceiveHook | None) -> None:
        """Install (or clear, with None) the hook invoked when `owner` receives units."""
        if hook is None:
            self._hooks.pop(owner, None)
        else:
            self._hooks[owner] = hook

    def balance_of(self, owner: str, batch_id: int) -> int:
        return self._balances.get(owner, {}).get(batch_id, 0)

    def balance_of_batch(self, owners: list[str], batch_ids: list[int]) -> list[int]:
        """Pairwise balances for parallel lists of owners and batch ids."""
        if len(owners) != len(batch_ids):
            raise InvalidArgument("owners and batch ids length mismatch")
        return [self.balance_of(o, b) for o, b in zip(owners, batch_ids)]

    def issue_units(
        self, owner: str, batch_id: int, amount: int, operator: str | None = None
    ) -> None:
        self._credit(owner, batch_id, amount)
        try:
            self._notify(owner, operator or owner, None, batch_id, amount)
        except Exception:
            self._debit(owner, batch_id, amount)
            raise

    def retire_units(self, owner: str, batch_id: int, amount: int) -> None:
        self._debit(owner, batch_id, amount)

    def transfer(
        self,
        caller: str,
        sender: str,
        recipient: str,
        batch_id: int,
        amount: int,
    ) -> None:
        """Move units between holders. Only the sender itself may initiate."""
        if caller != sender:
            raise Unauthorized(caller, reason=f"{caller} may not move units held by {sender}")
        self._debit(sender, batch_id, amount)
        self._credit(recipient, batch_id, amount)
        try:
            self._notify(recipient, caller, sender, batch_id, amount)
        except Exception:
            self._debit(recipient, batch_id, amount)
            self._credit(sender, batch_id, amount)
            raise
        logger.info(
            "Units transferred: batch=%d amount=%d %s -> %s",
            batch_id, amount, sender, recipient,
        )

    # ── State ──────────────────────────────────────────────────

    def export(self) -> dict[str, dict[int, int]]:
        return {
            owner: {batch_id: units for batch_id, units in batches.items() if units}
            for owner, batches in self._balances.items()
            if any(batches.values())
        }

    def load(self, balances: dict[str, dict[int, int]]) -> None:
        self._balances = {owner: dict(batches) for owner, batches in balances.items()}

    # ── Internal ───────────────────────────────────────────────

    def _credit(self, owner: str, batch_id: int, amount: int) -> None:
        batches = self._balances.setdefault(owner, {})
        batches[batch_id] = batches.get(batch_id, 0) + amount

    def _debit(self, owner: str, batch_id: int, amount: int) -> None:
        balance = self.balance_of(owner, batch_id)
        if balance < amount:
            raise InsufficientBalance(owner, batch_id, balance, amount)
        self._balances.setdefault(owner, {})[batch_id] = balance - amount

    def _notify(
        self,
        owner: str,
        operator: str,
        sender: str | None,
        batch_id: int,
        amount: int,
    ) -> None:
        hook = self._hooks.get(owner)
        if hook is not None:
            hook(operator, sender, batch_id, amount)
