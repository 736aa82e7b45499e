"""
Project Registry: named projects that batches are issued against.

Projects are created once by a project manager and never deleted. Name and
description can be edited independently. Reads always return copies.
"""

from __future__ import annotations

import logging

from sustaim.governance.access import AccessController
from sustaim.ledger.errors import AlreadyExists, InvalidArgument, NotFound, check_integer
from sustaim.ledger.schema import Project, Role

logger = logging.getLogger(__name__)


class ProjectRegistry:
    """Creates, updates and looks up projects."""

    def __init__(self, access: AccessController) -> None:
        self.access = access
        self._projects: dict[int, Project] = {}
        self._num_projects = 0

    def create_project(
        self,
        caller: str,
        project_id: int,
        name: str,
        description: str = "",
    ) -> Project:
        """
        Register a new project.

        Raises:
            Unauthorized: caller is not a project manager.
            InvalidArgument: id is not a positive integer, or name is empty.
            AlreadyExists: a project already uses this id.
        """
        self.access.check_role(caller, Role.PROJECT_MANAGER)
        check_integer(project_id, "id")
        if project_id <= 0:
            raise InvalidArgument("id must be positive")
        if project_id in self._projects:
            raise AlreadyExists(project_id)
        if not name:
            raise InvalidArgument("name required")

        project = Project(id=project_id, name=name, description=description)
        self._projects[project_id] = project
        self._num_projects += 1
        logger.info("Project created: id=%d name=%r by %s", project_id, name, caller)
        return project.model_copy()

    def update_project_description(
        self, caller: str, project_id: int, description: str
    ) -> None:
        self.access.check_role(caller, Role.PROJECT_MANAGER)
        project = self._require(project_id)
        # only the description field is rewritten
        project.description = description
        logger.info("Project description updated: id=%d by %s", project_id, caller)

    def update_project_name(self, caller: str, project_id: int, name: str) -> None:
        self.access.check_role(caller, Role.PROJECT_MANAGER)
        project = self._require(project_id)
        if not name:
            raise InvalidArgument("name required")
        self._projects[project_id] = Project(
            id=project_id, name=name, description=project.description
        )
        logger.info("Project renamed: id=%d name=%r by %s", project_id, name, caller)

    def get_project(self, project_id: int) -> Project:
        return self._require(project_id).model_copy()

    def list_projects(self) -> list[Project]:
        return [self._projects[pid].model_copy() for pid in sorted(self._projects)]

    def num_projects(self) -> int:
        return self._num_projects

    # ── State ──────────────────────────────────────────────────

    def export(self) -> tuple[list[Project], int]:
        return self.list_projects(), self._num_projects

    def load(self, projects: list[Project], num_projects: int) -> None:
        self._projects = {p.id: p.model_copy() for p in projects}
        self._num_projects = num_projects

    # ── Internal ───────────────────────────────────────────────

    def _require(self, project_id: int) -> Project:
        project = self._projects.get(project_id)
        if project is None:
            raise NotFound(project_id)
        return project
