"""
Ledger Store: persists committed ledger snapshots through SQLAlchemy.

The ledger keeps its working state in memory and hands the store a full
snapshot after every committed call. Each save is a single transaction, so
readers of the database only ever see the state between two calls.

Usage:
    store = LedgerStore("sqlite:///sustaim.db")
    store.initialize()
    snapshot = store.load()      # None for a fresh database
    store.save(snapshot)
"""

from __future__ import annotations

import logging

from sqlalchemy import create_engine, delete, select
from sqlalchemy.orm import sessionmaker

from sustaim.ledger.models import (
    BalanceDB,
    BatchDB,
    Base,
    LedgerGlobalsDB,
    ProjectCounterDB,
    ProjectDB,
    RoleAssignmentDB,
)
from sustaim.ledger.schema import CounterBucket, LedgerSnapshot, Project, Role

logger = logging.getLogger(__name__)

GLOBALS_ROW_ID = 1

_TABLES = (RoleAssignmentDB, ProjectDB, BatchDB, ProjectCounterDB, BalanceDB, LedgerGlobalsDB)


class LedgerStore:
    """SQL-backed snapshot store for the ledger."""

    def __init__(self, database_url: str) -> None:
        """
        Initialize the store.

        Args:
            database_url: SQLAlchemy connection string (sync driver).
        """
        self.engine = create_engine(database_url, echo=False)
        self.SessionLocal = sessionmaker(bind=self.engine)

    def initialize(self) -> None:
        """Create the schema if it does not exist yet."""
        Base.metadata.create_all(self.engine)

    def load(self) -> LedgerSnapshot | None:
        """Read the last committed snapshot, or None if nothing was ever saved."""
        with self.SessionLocal() as session:
            globals_row = session.get(LedgerGlobalsDB, GLOBALS_ROW_ID)
            if globals_row is None:
                return None

            roles: dict[Role, list[str]] = {}
            for row in session.execute(select(RoleAssignmentDB)).scalars():
                roles.setdefault(Role(row.role), []).append(row.principal)

            # ids are stored as text, so order numerically here
            projects = sorted(
                (
                    Project(id=row.id, name=row.name, description=row.description)
                    for row in session.execute(select(ProjectDB)).scalars()
                ),
                key=lambda project: project.id,
            )

            batch_projects: dict[int, int] = {}
            batch_buckets: dict[int, CounterBucket] = {}
            for row in session.execute(select(BatchDB)).scalars():
                if row.project_id is not None:
                    batch_projects[row.id] = row.project_id
                batch_buckets[row.id] = CounterBucket(
                    issued_amount=row.issued_amount, burned_amount=row.burned_amount
                )

            project_buckets = {
                row.project_id: CounterBucket(
                    issued_amount=row.issued_amount, burned_amount=row.burned_amount
                )
                for row in session.execute(select(ProjectCounterDB)).scalars()
            }

            balances: dict[str, dict[int, int]] = {}
            for row in session.execute(select(BalanceDB)).scalars():
                balances.setdefault(row.owner, {})[row.batch_id] = row.amount

            return LedgerSnapshot(
                roles={role: sorted(members) for role, members in roles.items()},
                projects=projects,
                num_projects=globals_row.num_projects,
                batch_projects=batch_projects,
                batch_buckets=batch_buckets,
                project_buckets=project_buckets,
                total_issued=globals_row.total_issued,
                total_burned=globals_row.total_burned,
                balances=balances,
                metadata_uri=globals_row.metadata_uri,
            )

    def save(self, snapshot: LedgerSnapshot) -> None:
        """Replace the stored state with `snapshot` in one transaction."""
        with self.SessionLocal.begin() as session:
            for table in _TABLES:
                session.execute(delete(table))

            session.add_all(
                RoleAssignmentDB(role=role.value, principal=principal)
                for role, members in snapshot.roles.items()
                for principal in members
            )
            session.add_all(
                ProjectDB(id=p.id, name=p.name, description=p.description)
                for p in snapshot.projects
            )
            batch_ids = set(snapshot.batch_buckets) | set(snapshot.batch_projects)
            for batch_id in batch_ids:
                bucket = snapshot.batch_buckets.get(batch_id, CounterBucket())
                session.add(
                    BatchDB(
                        id=batch_id,
                        project_id=snapshot.batch_projects.get(batch_id),
                        issued_amount=bucket.issued_amount,
                        burned_amount=bucket.burned_amount,
                    )
                )
            session.add_all(
                ProjectCounterDB(
                    project_id=project_id,
                    issued_amount=bucket.issued_amount,
                    burned_amount=bucket.burned_amount,
                )
                for project_id, bucket in snapshot.project_buckets.items()
            )
            session.add_all(
                BalanceDB(owner=owner, batch_id=batch_id, amount=amount)
                for owner, batches in snapshot.balances.items()
                for batch_id, amount in batches.items()
                if amount
            )
            session.add(
                LedgerGlobalsDB(
                    id=GLOBALS_ROW_ID,
                    total_issued=snapshot.total_issued,
                    total_burned=snapshot.total_burned,
                    num_projects=snapshot.num_projects,
                    metadata_uri=snapshot.metadata_uri,
                )
            )

        logger.debug(
            "Ledger snapshot saved: issued=%d burned=%d projects=%d",
            snapshot.total_issued, snapshot.total_burned, snapshot.num_projects,
        )
