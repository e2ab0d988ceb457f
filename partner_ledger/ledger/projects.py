"""
Project Registry

Lifecycle of the projects inside one workspace: create, rename, select,
delete. Deleting a project deletes its transactions with it. Projects never
expire on their own.
"""

from datetime import date
from typing import Optional

from partner_ledger.errors import ValidationError
from partner_ledger.ledger.ids import IdGenerator
from partner_ledger.models.ledger import MAX_PROJECT_NAME_LENGTH, Project, WorkspaceState
from partner_ledger.models.validation import ValidationIssue


def _clean_name(name: Optional[str]) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError(
            "Please enter a project name.",
            [ValidationIssue(
                field="name",
                issue_type="missing",
                message="Project name cannot be empty",
                severity="error",
            )],
        )
    if len(cleaned) > MAX_PROJECT_NAME_LENGTH:
        raise ValidationError(
            f"Project name must be at most {MAX_PROJECT_NAME_LENGTH} characters.",
            [ValidationIssue(
                field="name",
                issue_type="too_long",
                message=f"Project name is {len(cleaned)} characters long",
                severity="error",
            )],
        )
    return cleaned


class ProjectRegistry:
    """
    View over the projects of a WorkspaceState.

    The registry holds no state of its own; it mutates the workspace it was
    given, so it can be rebuilt whenever the workspace is replaced.
    """

    def __init__(self, state: WorkspaceState, id_generator: IdGenerator):
        self._state = state
        self._ids = id_generator

    @property
    def current_project(self) -> Optional[Project]:
        return self._state.find_project(self._state.current_project_id)

    def get_project(self, project_id: int) -> Optional[Project]:
        return self._state.find_project(project_id)

    def list_projects(self) -> list[Project]:
        """Projects newest first (by created date, then id)."""
        return sorted(
            self._state.projects,
            key=lambda p: (p.created_date, p.id),
            reverse=True,
        )

    def create_project(self, name: str, created: Optional[date] = None) -> Project:
        """
        Create an empty project.

        Raises:
            ValidationError: If the name is empty or too long
        """
        project = Project(
            id=self._ids.next_id(),
            name=_clean_name(name),
            created_date=created or date.today(),
        )
        self._state.projects.append(project)
        return project

    def rename_project(self, project_id: int, new_name: str) -> Optional[Project]:
        """Rename a project. Returns None if it does not exist."""
        cleaned = _clean_name(new_name)
        project = self.get_project(project_id)
        if project is None:
            return None
        project.name = cleaned
        return project

    def delete_project(self, project_id: int) -> Optional[Project]:
        """
        Remove a project and all of its transactions.

        Clears the selection if the project was selected.
        Returns the removed project, or None if it did not exist.
        """
        project = self.get_project(project_id)
        if project is None:
            return None
        self._state.projects = [p for p in self._state.projects if p.id != project_id]
        if self._state.current_project_id == project_id:
            self._state.current_project_id = None
        return project

    def select_project(self, project_id: int) -> Optional[Project]:
        """Make a project the current one. Returns None (selection unchanged) if absent."""
        project = self.get_project(project_id)
        if project is not None:
            self._state.current_project_id = project.id
        return project

    def clear_selection(self) -> None:
        self._state.current_project_id = None

    def set_settled_flag(self, project_id: int, is_settled: bool) -> Optional[Project]:
        """
        Store the manual "settled" bookmark.

        The flag is informational only. The balance engine never reads it.
        """
        project = self.get_project(project_id)
        if project is None:
            return None
        project.is_settled = is_settled
        return project
