"""
Context Store

Persisted CLI state: the repository root and the active workspace.
Both live as single-line files under the config directory and are
replaced atomically.
"""

from pathlib import Path
from typing import Callable, List, Optional

from cpc.constants import (
    BUILTIN_WORKSPACES,
    DEFAULT_CONTEXT,
    ENVS_DIRNAME,
    TERRAFORM_DIRNAME,
    TFVARS_DIRNAME,
)
from cpc.config import Settings
from cpc.core.validators import check_workspace_name
from cpc.exceptions import (
    ConfigurationError,
    RepoNotConfiguredError,
    ValidationError,
    WorkspaceNotFoundError,
)
from cpc.models.workspace import WorkspaceContext
from cpc.utils import atomic_write_text, read_text_or_empty

SwitchListener = Callable[[str, str], None]


class ContextStore:
    """
    Repository path + current workspace.

    Responsibilities:
    - get/set the repository root
    - get/set the active workspace (notifying switch listeners)
    - workspace discovery (built-ins + envs/*.env)
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._listeners: List[SwitchListener] = []

    def add_switch_listener(self, listener: SwitchListener) -> None:
        """Register `listener(old, new)`, called after the active workspace changes."""
        self._listeners.append(listener)

    # Repository root

    def get_repo_path(self) -> Path:
        """
        Repository root recorded by `setup-cpc`.

        Raises:
            RepoNotConfiguredError: If the path was never recorded
            ConfigurationError: If the recorded directory no longer exists
        """
        raw = read_text_or_empty(self.settings.repo_path_file)
        if not raw:
            raise RepoNotConfiguredError(str(self.settings.repo_path_file))

        repo = Path(raw).expanduser()
        if not repo.is_dir():
            raise ConfigurationError(
                f"Repository path does not exist: {repo}",
                context="Run: cpc setup-cpc from the repository root",
            )
        return repo

    def has_repo_path(self) -> bool:
        return bool(read_text_or_empty(self.settings.repo_path_file))

    def set_repo_path(self, path: Path) -> Path:
        """Record the repository root (absolute)."""
        repo = path.expanduser().resolve()
        if not repo.is_dir():
            raise ConfigurationError(f"Not a directory: {repo}")
        atomic_write_text(self.settings.repo_path_file, f"{repo}\n")
        return repo

    # Active workspace

    def get_current_context(self) -> str:
        """Active workspace; 'default' if none was ever selected."""
        name = read_text_or_empty(self.settings.context_file)
        if not name or name == "null":
            return DEFAULT_CONTEXT
        return name

    def set_context(self, name: str) -> str:
        """
        Make `name` the active workspace.

        Args:
            name: Workspace name

        Returns:
            The previously active workspace

        Raises:
            ValidationError: If the name is malformed
            WorkspaceNotFoundError: If no such workspace exists
        """
        result = check_workspace_name(name)
        if not result.is_valid:
            raise ValidationError(f"Invalid workspace name '{name}'", context="; ".join(result.errors))

        available = self.list_workspaces()
        if name not in available:
            raise WorkspaceNotFoundError(name, available)

        old = self.get_current_context()
        atomic_write_text(self.settings.context_file, f"{name}\n")

        if old != name:
            for listener in self._listeners:
                listener(old, name)
        return old

    # Discovery

    def envs_dir(self) -> Path:
        return self.get_repo_path() / ENVS_DIRNAME

    def env_file(self, name: str) -> Path:
        return self.envs_dir() / f"{name}.env"

    def list_workspaces(self) -> List[str]:
        """
        Built-in workspaces plus every envs/<name>.env in the repository.

        Only the built-ins are returned when no repository is configured.
        """
        names = set(BUILTIN_WORKSPACES)
        if self.has_repo_path():
            envs = self.envs_dir()
            if envs.is_dir():
                names.update(path.stem for path in envs.glob("*.env"))
        return sorted(names)

    def workspace(self, name: Optional[str] = None) -> WorkspaceContext:
        """Resolve a workspace (the active one by default) to its file locations."""
        name = name or self.get_current_context()
        repo = self.get_repo_path()
        return WorkspaceContext(
            name=name,
            env_file=repo / ENVS_DIRNAME / f"{name}.env",
            tfvars_file=repo / TERRAFORM_DIRNAME / TFVARS_DIRNAME / f"{name}.tfvars",
            is_builtin=name in BUILTIN_WORKSPACES,
        )
