"""
Ledger persistence: SQLAlchemy models for the committed ledger state.

Each table mirrors one component's exclusively owned data:

- role_assignments: AccessController
- projects: ProjectRegistry
- batches, project_counters, ledger_globals: BatchLedger
- balances: BalanceStore

Amounts and batch or project ids are unbounded integers. Both are stored as
decimal text so that no backend truncates or rejects them.
"""

from __future__ import annotations

from sqlalchemy import Column, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all ledger models."""
    pass


class Amount(TypeDecorator):
    """Non-negative integer of arbitrary size stored as text."""

    impl = String(80)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(int(value))

    def process_result_value(self, value, dialect):
        return None if value is None else int(value)


class Id(Amount):
    """Batch or project id of arbitrary size stored as text."""

    cache_ok = True


class RoleAssignmentDB(Base):
    __tablename__ = "role_assignments"

    role = Column(String(32), primary_key=True)
    principal = Column(String(200), primary_key=True)


class ProjectDB(Base):
    __tablename__ = "projects"

    id = Column(Id, primary_key=True)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=False, default="")

    def __repr__(self) -> str:
        return f"<Project id={self.id} name={self.name!r}>"


class BatchDB(Base):
    """Per-batch counters plus the batch -> project binding."""

    __tablename__ = "batches"

    id = Column(Id, primary_key=True)
    project_id = Column(
        Id, nullable=True,
        comment="Bound project; NULL until the first issuance",
    )
    issued_amount = Column(Amount, nullable=False, default=0)
    burned_amount = Column(Amount, nullable=False, default=0)


class ProjectCounterDB(Base):
    __tablename__ = "project_counters"

    project_id = Column(Id, primary_key=True)
    issued_amount = Column(Amount, nullable=False, default=0)
    burned_amount = Column(Amount, nullable=False, default=0)


class BalanceDB(Base):
    __tablename__ = "balances"

    owner = Column(String(200), primary_key=True)
    batch_id = Column(Id, primary_key=True)
    amount = Column(Amount, nullable=False)


class LedgerGlobalsDB(Base):
    """Single-row table of global scalars."""

    __tablename__ = "ledger_globals"

    id = Column(Integer, primary_key=True)
    total_issued = Column(Amount, nullable=False, default=0)
    total_burned = Column(Amount, nullable=False, default=0)
    num_projects = Column(Integer, nullable=False, default=0)
    metadata_uri = Column(Text, nullable=False, default="")
