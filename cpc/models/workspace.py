"""
Workspace Models

Dataclass models for the active workspace context and decrypted secrets.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional


@dataclass
class WorkspaceContext:
    """A named deployment environment and where its configuration lives."""

    name: str
    env_file: Path
    tfvars_file: Path
    is_builtin: bool = False

    @property
    def tofu_workspace(self) -> str:
        """OpenTofu workspace bound to this context (same name)."""
        return self.name

    @property
    def has_env_file(self) -> bool:
        return self.env_file.exists()

    def __repr__(self) -> str:
        return f"WorkspaceContext(name={self.name}, builtin={self.is_builtin})"


@dataclass
class SecretsBundle:
    """Decrypted credential set. Values are kept out of repr()."""

    raw: str = field(repr=False)
    values: Dict[str, str] = field(repr=False)
    loaded_at: float = 0.0
    source_mtime: float = 0.0

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.values.get(key, default)

    def __contains__(self, key: str) -> bool:
        return bool(self.values.get(key))

    @property
    def keys(self) -> list[str]:
        return sorted(self.values)

    def masked(self) -> Dict[str, str]:
        """Key -> masked value, safe to print."""
        masked = {}
        for key, value in sorted(self.values.items()):
            if not value:
                masked[key] = "(empty)"
            elif len(value) > 8:
                masked[key] = f"{value[:2]}****{value[-2:]}"
            else:
                masked[key] = "****"
        return masked
