"""
Batch Ledger: batch/project binding and cumulative counters.

The ledger tracks three scopes of {issued, burned} counters:

1. per batch
2. per project
3. global (total_issued / total_burned)

All counters only grow. Unit ownership itself lives in the BalanceStore;
this ledger asks the store to move units first and only then updates its
own counters, so a failure in the store leaves the counters untouched.

Binding semantics:
    Every issuance rewrites the batch -> project binding to the project id
    given in that call, even when the batch is already bound elsewhere.
    Retiring from a batch that was never issued credits project 0.
"""

from __future__ import annotations

import logging

from sustaim.governance.access import AccessController
from sustaim.ledger.balances import BalanceStore
from sustaim.ledger.errors import InvalidArgument, Unauthorized, check_integer
from sustaim.ledger.schema import CounterBucket, Role

logger = logging.getLogger(__name__)

UNBOUND_PROJECT_ID = 0


class BatchLedger:
    """Issues and retires units while keeping batch, project and global totals."""

    def __init__(self, access: AccessController, balances: BalanceStore) -> None:
        self.access = access
        self.balances = balances
        self._batch_projects: dict[int, int] = {}
        self._batch_buckets: dict[int, CounterBucket] = {}
        self._project_buckets: dict[int, CounterBucket] = {}
        self._total_issued = 0
        self._total_burned = 0

    def issue(
        self,
        caller: str,
        to: str,
        batch_id: int,
        amount: int,
        project_id: int,
    ) -> None:
        """
        Issue `amount` new units of `batch_id` to `to` under `project_id`.

        The project id only has to be positive; it is not required to name
        a registered project.

        Raises:
            Unauthorized: caller is not an issuer.
            InvalidArgument: non-integer values, non-positive project id,
                negative batch id or amount.
        """
        self.access.check_role(caller, Role.ISSUER)
        check_integer(project_id, "project id")
        if project_id <= 0:
            raise InvalidArgument("project id must be positive")
        _check_batch_and_amount(batch_id, amount)

        self.balances.issue_units(to, batch_id, amount, operator=caller)

        self._total_issued += amount
        self._bucket(self._batch_buckets, batch_id).issued_amount += amount
        self._bucket(self._project_buckets, project_id).issued_amount += amount
        previous = self._batch_projects.get(batch_id)
        self._batch_projects[batch_id] = project_id

        if previous is not None and previous != project_id:
            logger.warning(
                "Batch %d rebound from project %d to %d", batch_id, previous, project_id
            )
        logger.info(
            "Issued: batch=%d project=%d amount=%d to=%s by %s",
            batch_id, project_id, amount, to, caller,
        )

    def retire(self, caller: str, holder: str, batch_id: int, amount: int) -> None:
        """
        Permanently remove `amount` units of `batch_id` held by `holder`.

        Holders may retire their own units; anyone else needs the retirer role.

        Raises:
            Unauthorized: caller is neither the holder nor a retirer.
            InvalidArgument: negative batch id or amount.
            InsufficientBalance: holder owns fewer than `amount` units.
        """
        if caller != holder and not self.access.has_role(Role.RETIRER, caller):
            logger.warning("Retirement denied: %s for holder %s", caller, holder)
            raise Unauthorized(caller, Role.RETIRER, f"{caller} is not the holder or a retirer")
        _check_batch_and_amount(batch_id, amount)

        self.balances.retire_units(holder, batch_id, amount)

        project_id = self.project_id_for_batch(batch_id)
        self._total_burned += amount
        self._bucket(self._batch_buckets, batch_id).burned_amount += amount
        self._bucket(self._project_buckets, project_id).burned_amount += amount

        logger.info(
            "Retired: batch=%d project=%d amount=%d holder=%s by %s",
            batch_id, project_id, amount, holder, caller,
        )

    # ── Reads ──────────────────────────────────────────────────

    def total_issued(self) -> int:
        return self._total_issued

    def total_burned(self) -> int:
        return self._total_burned

    def project_id_for_batch(self, batch_id: int) -> int:
        return self._batch_projects.get(batch_id, UNBOUND_PROJECT_ID)

    def batch_amounts(self, batch_id: int) -> CounterBucket:
        return self._batch_buckets.get(batch_id, CounterBucket()).model_copy()

    def project_amounts(self, project_id: int) -> CounterBucket:
        return self._project_buckets.get(project_id, CounterBucket()).model_copy()

    # ── State ──────────────────────────────────────────────────

    def export(self) -> dict:
        return {
            "batch_projects": dict(self._batch_projects),
            "batch_buckets": {k: v.model_copy() for k, v in self._batch_buckets.items()},
            "project_buckets": {k: v.model_copy() for k, v in self._project_buckets.items()},
            "total_issued": self._total_issued,
            "total_burned": self._total_burned,
        }

    def load(
        self,
        batch_projects: dict[int, int],
        batch_buckets: dict[int, CounterBucket],
        project_buckets: dict[int, CounterBucket],
        total_issued: int,
        total_burned: int,
    ) -> None:
        self._batch_projects = dict(batch_projects)
        self._batch_buckets = {k: v.model_copy() for k, v in batch_buckets.items()}
        self._project_buckets = {k: v.model_copy() for k, v in project_buckets.items()}
        self._total_issued = total_issued
        self._total_burned = total_burned

    # ── Internal ───────────────────────────────────────────────

    @staticmethod
    def _bucket(buckets: dict[int, CounterBucket], key: int) -> CounterBucket:
        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = CounterBucket()
        return bucket


def _check_batch_and_amount(batch_id: int, amount: int) -> None:
    check_integer(batch_id, "batch id")
    check_integer(amount, "amount")
    if batch_id < 0:
        raise InvalidArgument("batch id must not be negative")
    if amount < 0:
        raise InvalidArgument("amount must not be negative")
