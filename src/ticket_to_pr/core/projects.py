"""Project registry backed by projects.json."""

import json
import logging
from pathlib import Path

from ticket_to_pr.integrations.git import detect_default_branch
from ticket_to_pr.models import Project

logger = logging.getLogger(__name__)


class ProjectRegistry:
    """Maps project names from the board to local repositories.

    The file is read once, on first use, and cached for the life of the
    registry. Shape::

        {"projects": {"Alpha": {"directory": "/src/alpha", "buildCommand": "make"}}}
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._projects: dict[str, Project] | None = None
        self._default_branches: dict[str, str] = {}

    def _load(self) -> dict[str, Project]:
        if self._projects is not None:
            return self._projects
        try:
            data = json.loads(self.path.read_text())
            entries = data.get("projects", {})
        except FileNotFoundError:
            logger.warning("No projects file at %s", self.path)
            entries = {}
        except (json.JSONDecodeError, AttributeError) as e:
            logger.error("Ignoring invalid projects file %s: %s", self.path, e)
            entries = {}
        if not isinstance(entries, dict):
            logger.error("Ignoring projects file %s: \"projects\" is not an object", self.path)
            entries = {}

        self._projects = {
            name: _entry_to_project(name, entry)
            for name, entry in entries.items()
            if isinstance(entry, dict) and entry.get("directory")
        }
        return self._projects

    def get_project(self, name: str) -> Project | None:
        return self._load().get(name)

    def get_project_names(self) -> list[str]:
        return list(self._load())

    def get_project_dir(self, name: str) -> str | None:
        project = self.get_project(name)
        return project.directory if project else None

    def get_build_command(self, name: str) -> str | None:
        project = self.get_project(name)
        return project.build_command if project else None

    def get_blocked_files(self, name: str) -> list[str]:
        project = self.get_project(name)
        return list(project.blocked_files) if project else []

    def get_skip_pr(self, name: str) -> bool:
        project = self.get_project(name)
        return bool(project and project.skip_pr)

    def get_dev_access(self, name: str) -> bool:
        project = self.get_project(name)
        return bool(project and project.dev_access)

    async def get_base_branch(self, name: str) -> str:
        """The project's base branch override, else the repository's default branch."""
        project = self.get_project(name)
        if project is None:
            raise KeyError(name)
        if project.base_branch:
            return project.base_branch
        if project.directory not in self._default_branches:
            self._default_branches[project.directory] = await detect_default_branch(project.directory)
        return self._default_branches[project.directory]


def _entry_to_project(name: str, entry: dict) -> Project:
    blocked = entry.get("blockedFiles") or []
    return Project(
        name=name,
        directory=str(entry["directory"]),
        build_command=entry.get("buildCommand") or None,
        base_branch=entry.get("baseBranch") or None,
        blocked_files=[str(p) for p in blocked],
        skip_pr=bool(entry.get("skipPR", False)),
        dev_access=bool(entry.get("devAccess", False)),
    )


def add_project(
    path: str | Path,
    name: str,
    directory: str,
    build_command: str | None = None,
) -> None:
    """Merge a project entry into a projects file, creating it if needed."""
    path = Path(path)
    data: dict = {"projects": {}}
    if path.exists():
        try:
            data = json.loads(path.read_text())
        except json.JSONDecodeError:
            logger.warning("Rewriting invalid projects file %s", path)
        if not isinstance(data, dict):
            data = {}
        if not isinstance(data.get("projects"), dict):
            data["projects"] = {}

    entry = dict(data["projects"].get(name, {}))
    entry["directory"] = directory
    if build_command:
        entry["buildCommand"] = build_command
    data["projects"][name] = entry

    path.write_text(json.dumps(data, indent=2) + "\n")
