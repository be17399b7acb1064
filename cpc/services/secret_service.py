"""
Secret Management Service

Decrypts the SOPS secrets store, flattens it into UPPER_SNAKE keys and
keeps the result in memory only.
"""

import json
import os
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional

import yaml

from cpc.constants import (
    COMMAND_NOT_FOUND_EXIT_CODE,
    CREDENTIAL_SECRET_KEYS,
    REQUIRED_SECRET_KEYS,
    SECRET_PREFIX_SEGMENTS,
    SECRETS_CACHE_TTL,
    SECRETS_FILENAME,
    TERRAFORM_DIRNAME,
)
from cpc.core.timeout import TimeoutEngine
from cpc.exceptions import (
    ConfigurationError,
    DependencyError,
    OperationTimeoutError,
    ValidationError,
)
from cpc.logger import CpcLogger
from cpc.models.command import Command
from cpc.models.results import ValidationResult
from cpc.models.workspace import SecretsBundle
from cpc.services.context_service import ContextStore


def flatten_secrets(data: Dict[str, Any]) -> Dict[str, str]:
    """
    Flatten nested secrets into UPPER_SNAKE keys.

    A leading 'default' or 'global' segment is dropped, so both
    default.proxmox.host and global.proxmox_host become PROXMOX_HOST.
    """
    flat: Dict[str, str] = {}

    def walk(node: Any, path: list) -> None:
        if isinstance(node, dict):
            for key, value in node.items():
                walk(value, path + [str(key)])
            return
        segments = path
        while len(segments) > 1 and segments[0].lower() in SECRET_PREFIX_SEGMENTS:
            segments = segments[1:]
        key = "_".join(segments).upper().replace("-", "_")
        flat[key] = "" if node is None else str(node)

    walk(data, [])
    return flat


def check_secrets(values: Dict[str, str]) -> ValidationResult:
    """Required keys plus at least one credential."""
    result = ValidationResult()
    for key in REQUIRED_SECRET_KEYS:
        if not values.get(key):
            result.add_error(f"Missing required secret: {key}")
    if not any(values.get(key) for key in CREDENTIAL_SECRET_KEYS):
        result.add_error(f"At least one credential is required: {', '.join(CREDENTIAL_SECRET_KEYS)}")
    return result


class SecretService:
    """
    Secrets loading with an in-memory cache.

    Responsibilities:
    - decrypt (sops -d) and parse (PyYAML)
    - flatten + validate the required key set
    - cache for the TTL, refreshed if the encrypted file changes
    - temporary extra-vars file for Ansible
    """

    def __init__(
        self,
        store: ContextStore,
        timeouts: TimeoutEngine,
        logger: CpcLogger,
        ttl: int = SECRETS_CACHE_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.timeouts = timeouts
        self.logger = logger
        self.ttl = ttl
        self.clock = clock
        self._bundle: Optional[SecretsBundle] = None

    def secrets_file(self) -> Path:
        return self.store.get_repo_path() / TERRAFORM_DIRNAME / SECRETS_FILENAME

    def load(self, force: bool = False) -> SecretsBundle:
        """
        Decrypted, validated secrets.

        Args:
            force: Ignore the in-memory copy

        Returns:
            SecretsBundle

        Raises:
            ConfigurationError: If the store is missing or cannot be decrypted
            DependencyError: If sops is not installed
            ValidationError: If the payload is corrupt or incomplete
        """
        path = self.secrets_file()
        if not path.exists():
            raise ConfigurationError("Secrets file not found", context=str(path))

        mtime = path.stat().st_mtime
        if not force and self._is_fresh(mtime):
            self.logger.debug("Using cached secrets")
            return self._bundle

        self.logger.debug(f"Loading secrets from {path}")
        raw = self._decrypt(path)
        values = self.parse(raw)

        result = check_secrets(values)
        if not result.is_valid:
            raise ValidationError("Secrets are incomplete", context="; ".join(result.errors))

        self._bundle = SecretsBundle(raw=raw, values=values, loaded_at=self.clock(), source_mtime=mtime)
        self.logger.debug(f"Loaded {len(values)} secret values")
        return self._bundle

    def _is_fresh(self, mtime: float) -> bool:
        if self._bundle is None:
            return False
        if self._bundle.source_mtime != mtime:
            return False
        return self.clock() - self._bundle.loaded_at < self.ttl

    def _decrypt(self, path: Path) -> str:
        command = Command("sops", ["-d", str(path)], cwd=path.parent)
        result = self.timeouts.network(command, "Decrypting secrets")

        if result.timed_out:
            raise OperationTimeoutError("Timed out decrypting secrets", context=str(path))
        if result.returncode == COMMAND_NOT_FOUND_EXIT_CODE:
            raise DependencyError("Required tool 'sops' not found in PATH", context="Install sops to decrypt secrets")
        if result.is_failure:
            raise ConfigurationError(
                f"Failed to decrypt secrets (exit code: {result.returncode})",
                context=result.stderr.strip()[-500:] or str(path),
            )
        return result.stdout

    @staticmethod
    def parse(raw: str) -> Dict[str, str]:
        """
        Parse decrypted YAML into a flat map.

        Raises:
            ValidationError: If the text is not a YAML mapping
        """
        try:
            data = yaml.safe_load(raw)
        except yaml.YAMLError as e:
            raise ValidationError("Decrypted secrets are not valid YAML", context=str(e))
        if not isinstance(data, dict):
            raise ValidationError("Decrypted secrets must be a mapping")
        return flatten_secrets(data)

    def discard(self) -> None:
        """Drop the in-memory copy."""
        self._bundle = None

    @contextmanager
    def ansible_extra_vars_file(self) -> Iterator[Path]:
        """
        Secrets as a JSON extra-vars file readable only by the current user.

        The file is removed when the block exits, whatever happens inside.
        """
        bundle = self.load()
        fd, name = tempfile.mkstemp(prefix="cpc-secrets-", suffix=".json")
        path = Path(name)
        try:
            os.chmod(path, 0o600)
            with os.fdopen(fd, "w") as handle:
                json.dump({key.lower(): value for key, value in bundle.values.items()}, handle)
            yield path
        finally:
            path.unlink(missing_ok=True)
