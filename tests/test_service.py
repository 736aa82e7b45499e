"""
Tests for the Ledger Service: the public entry points end to end.

Validates:
- Deployment seeding and role wiring
- Issue / transfer / retire scenarios through the public surface
- Counter consistency across a mixed call sequence
- Re-entrant mutation rejected from receive hooks
- All-or-nothing calls, including failed persistence
- Non-integer ids and amounts rejected without wedging the ledger
- Metadata URI administration
"""

from __future__ import annotations

import threading

import pytest

from sustaim.ledger.errors import (
    InsufficientBalance,
    InvalidArgument,
    ReentrantCall,
    Unauthorized,
)
from sustaim.ledger.schema import CounterBucket, Role
from sustaim.ledger.service import LedgerService

MINT_AMOUNT = 1000
PROJECT_ID = 1
PROJECT_NAME = "Project Name"
PROJECT_DESCRIPTION = "Project Description"
BATCH_ID = 1


def make_service() -> LedgerService:
    service = LedgerService(deployer="owner")
    service.grant_role("owner", Role.ISSUER, "minter")
    service.grant_role("owner", Role.RETIRER, "burner")
    service.grant_role("owner", Role.PROJECT_MANAGER, "pm")
    return service


class TestDeployment:

    def test_owner_is_admin(self):
        service = LedgerService(deployer="owner")
        assert service.has_role(Role.ADMINISTRATOR, "owner")

    def test_counters_start_at_zero(self):
        service = LedgerService(deployer="owner")
        assert service.total_issued() == 0
        assert service.total_burned() == 0
        assert service.num_projects() == 0
        assert service.batch_amounts(BATCH_ID) == CounterBucket()
        assert service.project_id_for_batch(BATCH_ID) == 0


class TestScenarios:
    """The issue → transfer → retire flow of a batch."""

    def setup_method(self):
        self.service = make_service()
        self.service.create_project("pm", PROJECT_ID, PROJECT_NAME, PROJECT_DESCRIPTION)

    def test_issue(self):
        assert self.service.balance_of("owner", BATCH_ID) == 0
        self.service.issue("minter", "owner", BATCH_ID, MINT_AMOUNT, PROJECT_ID)

        assert self.service.balance_of("owner", BATCH_ID) == MINT_AMOUNT
        assert self.service.total_issued() == MINT_AMOUNT
        amounts = self.service.batch_amounts(BATCH_ID)
        assert amounts.issued_amount == MINT_AMOUNT
        assert amounts.burned_amount == 0

    def test_issue_requires_issuer(self):
        with pytest.raises(Unauthorized):
            self.service.issue("owner", "owner", BATCH_ID, MINT_AMOUNT, PROJECT_ID)

    @pytest.mark.parametrize("project_id", [0, -1])
    def test_issue_non_positive_project(self, project_id):
        with pytest.raises(InvalidArgument):
            self.service.issue("minter", "owner", BATCH_ID, MINT_AMOUNT, project_id)
        assert self.service.total_issued() == 0
        assert self.service.batch_amounts(BATCH_ID) == CounterBucket()

    def test_holder_retires_after_transfer(self):
        self.service.issue("minter", "owner", BATCH_ID, MINT_AMOUNT, PROJECT_ID)
        self.service.transfer("owner", "owner", "customer", BATCH_ID, MINT_AMOUNT)
        assert self.service.balance_of("customer", BATCH_ID) == MINT_AMOUNT

        self.service.retire("customer", "customer", BATCH_ID, MINT_AMOUNT)

        assert self.service.balance_of("customer", BATCH_ID) == 0
        assert self.service.total_burned() == MINT_AMOUNT
        assert self.service.batch_amounts(BATCH_ID) == CounterBucket(
            issued_amount=MINT_AMOUNT, burned_amount=MINT_AMOUNT
        )

    def test_retirer_retires_for_holder(self):
        self.service.issue("minter", "customer", BATCH_ID, MINT_AMOUNT, PROJECT_ID)
        self.service.retire("burner", "customer", BATCH_ID, MINT_AMOUNT)

        assert self.service.balance_of("customer", BATCH_ID) == 0
        assert self.service.total_burned() == MINT_AMOUNT
        assert self.service.total_issued() == MINT_AMOUNT

    def test_over_retirement_changes_nothing(self):
        self.service.issue("minter", "customer", BATCH_ID, MINT_AMOUNT, PROJECT_ID)
        before = self.service.export_state()

        with pytest.raises(InsufficientBalance):
            self.service.retire("burner", "customer", BATCH_ID, MINT_AMOUNT + 1)

        assert self.service.export_state() == before

    def test_stranger_cannot_retire(self):
        self.service.issue("minter", "customer", BATCH_ID, MINT_AMOUNT, PROJECT_ID)
        with pytest.raises(Unauthorized):
            self.service.retire("minter", "customer", BATCH_ID, MINT_AMOUNT)
        assert self.service.balance_of("customer", BATCH_ID) == MINT_AMOUNT

    def test_transfer_requires_sender(self):
        self.service.issue("minter", "customer", BATCH_ID, MINT_AMOUNT, PROJECT_ID)
        with pytest.raises(Unauthorized):
            self.service.transfer("burner", "customer", "burner", BATCH_ID, 1)
        assert self.service.balance_of("customer", BATCH_ID) == MINT_AMOUNT

    def test_transfer_does_not_touch_counters(self):
        self.service.issue("minter", "owner", BATCH_ID, MINT_AMOUNT, PROJECT_ID)
        self.service.transfer("owner", "owner", "customer", BATCH_ID, 400)
        assert self.service.balance_of_batch(
            ["owner", "customer"], [BATCH_ID, BATCH_ID]
        ) == [600, 400]
        assert self.service.total_issued() == MINT_AMOUNT
        assert self.service.total_burned() == 0


class TestCounterConsistency:

    def test_totals_equal_batch_sums(self):
        service = make_service()
        service.issue("minter", "a", 1, 500, 1)
        service.issue("minter", "b", 2, 300, 1)
        service.issue("minter", "a", 3, 200, 2)
        service.retire("a", "a", 1, 120)
        service.retire("burner", "b", 2, 300)
        service.issue("minter", "b", 1, 50, 3)
        service.retire("a", "a", 3, 10)

        batch_ids = [1, 2, 3]
        buckets = [service.batch_amounts(b) for b in batch_ids]
        assert service.total_issued() == sum(b.issued_amount for b in buckets) == 1050
        assert service.total_burned() == sum(b.burned_amount for b in buckets) == 430
        for bucket in buckets:
            assert bucket.burned_amount <= bucket.issued_amount

        # batch 1 is now bound to project 3, but its earlier counts stay with project 1
        project_ids = [0, 1, 2, 3]
        projects = [service.project_amounts(p) for p in project_ids]
        assert sum(p.issued_amount for p in projects) == 1050
        assert sum(p.burned_amount for p in projects) == 430


class TestReentrancy:
    """Receive hooks run inside `issue`; they may read but not mutate."""

    def setup_method(self):
        self.service = make_service()

    def test_nested_issue_rejected(self):
        def reenter(operator, sender, batch_id, amount):
            self.service.issue("minter", "holder", batch_id, amount, PROJECT_ID)

        self.service.register_receive_hook("holder", reenter)
        with pytest.raises(ReentrantCall):
            self.service.issue("minter", "holder", BATCH_ID, MINT_AMOUNT, PROJECT_ID)

        assert self.service.balance_of("holder", BATCH_ID) == 0
        assert self.service.total_issued() == 0
        assert self.service.batch_amounts(BATCH_ID) == CounterBucket()

    def test_nested_retire_rejected(self):
        def reenter(operator, sender, batch_id, amount):
            self.service.retire("holder", "holder", batch_id, amount)

        self.service.register_receive_hook("holder", reenter)
        with pytest.raises(ReentrantCall):
            self.service.issue("minter", "holder", BATCH_ID, MINT_AMOUNT, PROJECT_ID)
        assert self.service.total_burned() == 0

    def test_hook_may_read(self):
        seen = []

        def observe(operator, sender, batch_id, amount):
            seen.append((operator, sender, self.service.total_issued()))

        self.service.register_receive_hook("holder", observe)
        self.service.issue("minter", "holder", BATCH_ID, MINT_AMOUNT, PROJECT_ID)

        # counters are updated only after the delegated call returns
        assert seen == [("minter", None, 0)]
        assert self.service.total_issued() == MINT_AMOUNT

    def test_ledger_usable_after_rejected_reentry(self):
        def reenter(operator, sender, batch_id, amount):
            self.service.grant_role("owner", Role.ISSUER, "holder")

        self.service.register_receive_hook("holder", reenter)
        with pytest.raises(ReentrantCall):
            self.service.issue("minter", "holder", BATCH_ID, 1, PROJECT_ID)

        self.service.register_receive_hook("holder", None)
        self.service.issue("minter", "holder", BATCH_ID, 1, PROJECT_ID)
        assert self.service.total_issued() == 1
        assert not self.service.has_role(Role.ISSUER, "holder")


class TestAtomicity:

    def test_failed_save_restores_state(self):
        class FailingStore:
            def save(self, snapshot):
                raise RuntimeError("disk full")

        service = make_service()
        service.store = FailingStore()

        with pytest.raises(RuntimeError):
            service.issue("minter", "holder", BATCH_ID, MINT_AMOUNT, PROJECT_ID)

        assert service.total_issued() == 0
        assert service.balance_of("holder", BATCH_ID) == 0
        assert service.project_id_for_batch(BATCH_ID) == 0

    def test_failed_save_restores_project(self):
        class FailingStore:
            def save(self, snapshot):
                raise RuntimeError("disk full")

        service = make_service()
        service.store = FailingStore()

        with pytest.raises(RuntimeError):
            service.create_project("pm", PROJECT_ID, PROJECT_NAME, PROJECT_DESCRIPTION)

        assert service.num_projects() == 0
        assert service.list_projects() == []

    def test_failed_checkpoint_releases_guard(self, monkeypatch):
        service = make_service()
        export = service.balances.export
        calls = []

        def export_once_failing():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("copy failed")
            return export()

        monkeypatch.setattr(service.balances, "export", export_once_failing)

        with pytest.raises(RuntimeError):
            service.issue("minter", "holder", BATCH_ID, MINT_AMOUNT, PROJECT_ID)
        assert service.total_issued() == 0

        service.create_project("pm", PROJECT_ID, PROJECT_NAME)
        service.issue("minter", "holder", BATCH_ID, MINT_AMOUNT, PROJECT_ID)
        assert service.total_issued() == MINT_AMOUNT

    @pytest.mark.parametrize("amount", [1.5, True, "10", None])
    def test_non_integer_amount_rejected(self, amount):
        service = make_service()
        with pytest.raises(InvalidArgument, match="amount must be an integer"):
            service.issue("minter", "holder", BATCH_ID, amount, PROJECT_ID)

        assert service.total_issued() == 0
        assert service.batch_amounts(BATCH_ID) == CounterBucket()
        assert service.project_id_for_batch(BATCH_ID) == 0

        # the ledger keeps accepting calls
        service.create_project("pm", PROJECT_ID, PROJECT_NAME)
        service.issue("minter", "holder", BATCH_ID, MINT_AMOUNT, PROJECT_ID)
        assert service.total_issued() == MINT_AMOUNT
        assert service.export_state().total_issued == MINT_AMOUNT

    @pytest.mark.parametrize(
        "batch_id, project_id", [(1.5, PROJECT_ID), (BATCH_ID, True), (True, PROJECT_ID)]
    )
    def test_non_integer_ids_rejected_on_issue(self, batch_id, project_id):
        service = make_service()
        with pytest.raises(InvalidArgument, match="must be an integer"):
            service.issue("minter", "holder", batch_id, MINT_AMOUNT, project_id)
        assert service.total_issued() == 0
        assert service.balance_of("holder", BATCH_ID) == 0

    def test_non_integer_values_rejected_on_retire_and_transfer(self):
        service = make_service()
        service.issue("minter", "holder", BATCH_ID, 10, PROJECT_ID)

        with pytest.raises(InvalidArgument):
            service.retire("holder", "holder", BATCH_ID, 2.5)
        with pytest.raises(InvalidArgument):
            service.transfer("holder", "holder", "customer", BATCH_ID, 2.5)
        with pytest.raises(InvalidArgument):
            service.transfer("holder", "holder", "customer", True, 1)

        assert service.balance_of("holder", BATCH_ID) == 10
        assert service.total_burned() == 0
        service.retire("holder", "holder", BATCH_ID, 3)
        assert service.total_burned() == 3

    def test_non_integer_project_id_rejected(self):
        service = make_service()
        with pytest.raises(InvalidArgument, match="id must be an integer"):
            service.create_project("pm", True, PROJECT_NAME)
        assert service.num_projects() == 0
        service.create_project("pm", PROJECT_ID, PROJECT_NAME)
        assert service.num_projects() == 1

    def test_concurrent_issues_all_counted(self):
        service = make_service()

        def worker(n):
            for _ in range(50):
                service.issue("minter", f"holder-{n}", n, 1, PROJECT_ID)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert service.total_issued() == 400
        assert service.project_amounts(PROJECT_ID).issued_amount == 400


class TestMetadata:

    def test_admin_sets_uri(self):
        service = make_service()
        service.set_metadata_uri("owner", "https://example.org/batch/{id}.json")
        assert service.uri(26) == (
            "https://example.org/batch/"
            "000000000000000000000000000000000000000000000000000000000000001a.json"
        )

    def test_non_admin_rejected(self):
        service = make_service()
        with pytest.raises(Unauthorized):
            service.set_metadata_uri("pm", "https://example.org/{id}")
        assert service.uri(1) == ""
