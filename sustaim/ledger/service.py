"""
Ledger Service: the single authoritative ledger object of a deployment.

This service is the primary interface for all ledger operations. It owns
one instance of each component and exposes their entry points:

- Administration: grant_role, revoke_role, renounce_role, has_role
- Metadata:       set_metadata_uri, uri
- Projects:       create_project, update_project_name,
                  update_project_description, get_project, list_projects
- Ledger:         issue, retire, transfer, and the counter reads

Execution model:
    Every call holds one exclusive lock from its first check to its last
    write, so calls are totally ordered. A mutation that is still running
    (for example while a receive hook executes inside `issue`) rejects any
    nested mutation with `ReentrantCall`; nested reads are allowed.

    Each mutation first copies the state of the components it may write.
    If any step raises, those components are put back, so a call applies
    completely or not at all. When a LedgerStore is attached, the new state
    is saved before the lock is released.

Usage:
    service = LedgerService(deployer="0xdeployer")
    service.grant_role("0xdeployer", Role.ISSUER, "0xminter")
    service.issue("0xminter", to="0xholder", batch_id=1, amount=1000, project_id=1)
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterator

from sustaim.governance.access import AccessController, RoleStore
from sustaim.ledger.balances import BalanceStore, ReceiveHook
from sustaim.ledger.batches import BatchLedger
from sustaim.ledger.errors import InvalidArgument, ReentrantCall, check_integer
from sustaim.ledger.metadata import MetadataStore
from sustaim.ledger.projects import ProjectRegistry
from sustaim.ledger.schema import CounterBucket, LedgerSnapshot, Project, Role
from sustaim.ledger.store import LedgerStore

logger = logging.getLogger(__name__)


class LedgerService:
    """Role-gated batch ledger with atomic, serialised calls."""

    def __init__(
        self,
        deployer: str,
        store: LedgerStore | None = None,
        metadata_uri: str = "",
    ) -> None:
        """
        Construct a fresh ledger.

        Args:
            deployer: Principal granted ADMINISTRATOR at construction.
            store: Optional persistence; saved after every committed mutation.
            metadata_uri: Initial metadata URI template.
        """
        self.access = AccessController(RoleStore(), admin=deployer)
        self.balances = BalanceStore()
        self.projects = ProjectRegistry(self.access)
        self.batches = BatchLedger(self.access, self.balances)
        self.metadata = MetadataStore(self.access, metadata_uri)
        self.store = store

        self._lock = threading.RLock()
        self._mutating: str | None = None

    @classmethod
    def open(
        cls, store: LedgerStore, deployer: str, metadata_uri: str = ""
    ) -> LedgerService:
        """
        Restore the ledger persisted in `store`, or seed a new one.

        `deployer` and `metadata_uri` only apply when the store is empty.
        """
        store.initialize()
        service = cls(deployer=deployer, store=store, metadata_uri=metadata_uri)
        snapshot = store.load()
        if snapshot is None:
            store.save(service.export_state())
            logger.info("Ledger seeded: administrator=%s", deployer)
        else:
            service.load_state(snapshot)
            logger.info(
                "Ledger restored: issued=%d burned=%d projects=%d",
                snapshot.total_issued, snapshot.total_burned, snapshot.num_projects,
            )
        return service

    # ── Administration ─────────────────────────────────────────

    def grant_role(self, caller: str, role: Role, principal: str) -> None:
        with self._mutation("grant_role", "access"):
            self.access.grant_role(caller, role, principal)

    def revoke_role(self, caller: str, role: Role, principal: str) -> None:
        with self._mutation("revoke_role", "access"):
            self.access.revoke_role(caller, role, principal)

    def renounce_role(self, caller: str, role: Role) -> None:
        with self._mutation("renounce_role", "access"):
            self.access.renounce_role(caller, role)

    def has_role(self, role: Role, principal: str) -> bool:
        with self._lock:
            return self.access.has_role(role, principal)

    def role_members(self, role: Role) -> list[str]:
        with self._lock:
            return self.access.members(role)

    # ── Metadata ───────────────────────────────────────────────

    def set_metadata_uri(self, caller: str, new_uri: str) -> None:
        with self._mutation("set_metadata_uri", "metadata"):
            self.metadata.set_metadata_uri(caller, new_uri)

    def uri(self, batch_id: int) -> str:
        with self._lock:
            return self.metadata.uri(batch_id)

    # ── Projects ───────────────────────────────────────────────

    def create_project(
        self, caller: str, project_id: int, name: str, description: str = ""
    ) -> Project:
        with self._mutation("create_project", "projects"):
            return self.projects.create_project(caller, project_id, name, description)

    def update_project_name(self, caller: str, project_id: int, name: str) -> None:
        with self._mutation("update_project_name", "projects"):
            self.projects.update_project_name(caller, project_id, name)

    def update_project_description(
        self, caller: str, project_id: int, description: str
    ) -> None:
        with self._mutation("update_project_description", "projects"):
            self.projects.update_project_description(caller, project_id, description)

    def get_project(self, project_id: int) -> Project:
        with self._lock:
            return self.projects.get_project(project_id)

    def list_projects(self) -> list[Project]:
        with self._lock:
            return self.projects.list_projects()

    def num_projects(self) -> int:
        with self._lock:
            return self.projects.num_projects()

    # ── Ledger ─────────────────────────────────────────────────

    def issue(
        self, caller: str, to: str, batch_id: int, amount: int, project_id: int
    ) -> None:
        with self._mutation("issue", "batches", "balances"):
            self.batches.issue(caller, to, batch_id, amount, project_id)

    def retire(self, caller: str, holder: str, batch_id: int, amount: int) -> None:
        with self._mutation("retire", "batches", "balances"):
            self.batches.retire(caller, holder, batch_id, amount)

    def transfer(
        self, caller: str, sender: str, recipient: str, batch_id: int, amount: int
    ) -> None:
        """Move units the caller holds to another principal."""
        with self._mutation("transfer", "balances"):
            check_integer(batch_id, "batch id")
            check_integer(amount, "amount")
            if batch_id < 0 or amount < 0:
                raise InvalidArgument("batch id and amount must not be negative")
            self.balances.transfer(caller, sender, recipient, batch_id, amount)

    def register_receive_hook(self, owner: str, hook: ReceiveHook | None) -> None:
        with self._lock:
            self.balances.register_receive_hook(owner, hook)

    def balance_of(self, owner: str, batch_id: int) -> int:
        with self._lock:
            return self.balances.balance_of(owner, batch_id)

    def balance_of_batch(self, owners: list[str], batch_ids: list[int]) -> list[int]:
        with self._lock:
            return self.balances.balance_of_batch(owners, batch_ids)

    def total_issued(self) -> int:
        with self._lock:
            return self.batches.total_issued()

    def total_burned(self) -> int:
        with self._lock:
            return self.batches.total_burned()

    def project_id_for_batch(self, batch_id: int) -> int:
        with self._lock:
            return self.batches.project_id_for_batch(batch_id)

    def batch_amounts(self, batch_id: int) -> CounterBucket:
        with self._lock:
            return self.batches.batch_amounts(batch_id)

    def project_amounts(self, project_id: int) -> CounterBucket:
        with self._lock:
            return self.batches.project_amounts(project_id)

    # ── State ──────────────────────────────────────────────────

    def export_state(self) -> LedgerSnapshot:
        """Copy of the complete current state."""
        with self._lock:
            projects, num_projects = self.projects.export()
            return LedgerSnapshot(
                roles=self.access.store.export(),
                projects=projects,
                num_projects=num_projects,
                balances=self.balances.export(),
                metadata_uri=self.metadata.template,
                **self.batches.export(),
            )

    def load_state(self, snapshot: LedgerSnapshot) -> None:
        """Replace every component's state with `snapshot`."""
        with self._lock:
            self.access.store = RoleStore(
                {role: set(members) for role, members in snapshot.roles.items()}
            )
            self.projects.load(snapshot.projects, snapshot.num_projects)
            self.batches.load(
                snapshot.batch_projects,
                snapshot.batch_buckets,
                snapshot.project_buckets,
                snapshot.total_issued,
                snapshot.total_burned,
            )
            self.balances.load(snapshot.balances)
            self.metadata.load(snapshot.metadata_uri)

    # ── Internal ───────────────────────────────────────────────

    def _checkpoint(self, component: str) -> Callable[[], None]:
        """Copy one component's state; the returned callable puts it back."""
        if component == "access":
            roles = self.access.store.export()
            return lambda: setattr(
                self.access,
                "store",
                RoleStore({role: set(members) for role, members in roles.items()}),
            )
        if component == "projects":
            projects, num_projects = self.projects.export()
            return lambda: self.projects.load(projects, num_projects)
        if component == "batches":
            counters = self.batches.export()
            return lambda: self.batches.load(**counters)
        if component == "balances":
            balances = self.balances.export()
            return lambda: self.balances.load(balances)
        if component == "metadata":
            template = self.metadata.template
            return lambda: self.metadata.load(template)
        raise ValueError(f"Unknown ledger component: {component}")

    @contextmanager
    def _mutation(self, operation: str, *components: str) -> Iterator[None]:
        """Run one mutation over `components`, restoring them if anything raises."""
        with self._lock:
            if self._mutating is not None:
                logger.warning(
                    "Re-entrant %s rejected during %s", operation, self._mutating
                )
                raise ReentrantCall(operation)

            self._mutating = operation
            try:
                restores = [self._checkpoint(component) for component in components]
                try:
                    yield
                    if self.store is not None:
                        self.store.save(self.export_state())
                except Exception:
                    for restore in restores:
                        restore()
                    raise
            finally:
                self._mutating = None
