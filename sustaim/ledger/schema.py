"""
Ledger Schema: Pydantic models for roles, projects and counter buckets.

These models are the canonical value types passed across component
boundaries. Components never hand out references to their internal tables;
reads return copies of these models.
"""

from __future__ import annotations

import enum

from pydantic import BaseModel, Field, computed_field


# ════════════════════════════════════════════════════════════════
# Enumerations
# ════════════════════════════════════════════════════════════════


class Role(str, enum.Enum):
    """Capabilities that gate ledger mutations."""

    ADMINISTRATOR = "administrator"  # grants and revokes every role
    ISSUER = "issuer"
    RETIRER = "retirer"
    PROJECT_MANAGER = "project_manager"


# ════════════════════════════════════════════════════════════════
# Value Models
# ════════════════════════════════════════════════════════════════


class Project(BaseModel):
    """A named category spanning one or more batches. Identity is the id."""

    id: int = Field(description="Positive project identifier")
    name: str = Field(description="Display name, never empty")
    description: str = Field(default="", description="Free text, may be empty")


class CounterBucket(BaseModel):
    """
    Cumulative issued/burned pair for one batch or one project.

    Both fields only ever grow. `outstanding` is what is still in
    circulation for the scope the bucket tracks.
    """

    issued_amount: int = Field(default=0, ge=0)
    burned_amount: int = Field(default=0, ge=0)

    @computed_field
    @property
    def outstanding(self) -> int:
        return self.issued_amount - self.burned_amount


class LedgerSnapshot(BaseModel):
    """
    The complete ledger state at one committed point.

    Used to persist the ledger, to restore it after a failed call, and as
    the input to the audit checks.
    """

    roles: dict[Role, list[str]] = Field(default_factory=dict)
    projects: list[Project] = Field(default_factory=list)
    num_projects: int = 0
    batch_projects: dict[int, int] = Field(
        default_factory=dict, description="batch id -> project id binding"
    )
    batch_buckets: dict[int, CounterBucket] = Field(default_factory=dict)
    project_buckets: dict[int, CounterBucket] = Field(default_factory=dict)
    total_issued: int = 0
    total_burned: int = 0
    balances: dict[str, dict[int, int]] = Field(
        default_factory=dict, description="owner -> batch id -> units held"
    )
    metadata_uri: str = ""
