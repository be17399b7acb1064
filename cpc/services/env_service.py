"""
Environment Service

Merges the repository-wide cpc.env with the active workspace's
envs/<name>.env (workspace values win).
"""

import io
from pathlib import Path
from typing import Dict, Optional

from dotenv import dotenv_values, set_key

from cpc.constants import GLOBAL_ENV_FILENAME, TOFU_ENV_VARS
from cpc.exceptions import ConfigurationError
from cpc.services.context_service import ContextStore


class EnvService:
    """Workspace environment loading and editing (python-dotenv)."""

    def __init__(self, store: ContextStore):
        self.store = store

    def global_env_file(self) -> Path:
        return self.store.get_repo_path() / GLOBAL_ENV_FILENAME

    def load(self, workspace: Optional[str] = None) -> Dict[str, str]:
        """
        Merged environment for a workspace.

        The global file is read first so the workspace file can both
        override its keys and reference them with ${VAR}.

        Args:
            workspace: Workspace name (defaults to the active one)

        Returns:
            Key -> value (unset values become '')

        Raises:
            ConfigurationError: If the workspace env file is missing
        """
        context = self.store.workspace(workspace)
        if not context.env_file.exists():
            raise ConfigurationError(
                f"Environment file for workspace '{context.name}' not found",
                context=str(context.env_file),
            )

        parts = []
        global_file = self.global_env_file()
        if global_file.exists():
            parts.append(global_file.read_text())
        parts.append(context.env_file.read_text())

        values = dotenv_values(stream=io.StringIO("\n".join(parts)))
        return {key: value or "" for key, value in values.items()}

    def tofu_env(self, env: Dict[str, str]) -> Dict[str, str]:
        """TF_VAR_<key> overrides for the workspace keys OpenTofu consumes."""
        return {f"TF_VAR_{key.lower()}": env[key] for key in TOFU_ENV_VARS if env.get(key)}

    def set_value(self, workspace: str, key: str, value: str) -> None:
        """Write one KEY=value into a workspace env file."""
        env_file = self.store.env_file(workspace)
        if not env_file.exists():
            raise ConfigurationError(f"Environment file for workspace '{workspace}' not found", context=str(env_file))
        set_key(str(env_file), key, value, quote_mode="never")
