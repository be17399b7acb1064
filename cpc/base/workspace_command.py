"""
Workspace Command Base Class

Base class for commands that act on the active workspace.
Provides lazy service initialization.
"""

from typing import Dict, Optional

from cpc.base.base_command import BaseCommand
from cpc.constants import CACHE_CLUSTER_SUMMARY
from cpc.core.runtime import Runtime
from cpc.exceptions import ValidationError
from cpc.models.cluster import ClusterNode, ClusterSummary
from cpc.models.errors import ErrorAction, ErrorKind, Severity
from cpc.models.workspace import SecretsBundle
from cpc.services import (
    AddonService,
    AnsibleService,
    EnvService,
    KubectlService,
    SecretService,
    SSHService,
    TofuService,
    TTLClass,
)

NO_CACHED_CLUSTER_DATA = "No cached cluster data available. Run 'cpc cluster-info' or 'cpc status' first"


class WorkspaceCommand(BaseCommand):
    """
    Base class for workspace-scoped commands.

    Provides:
    - Lazily created services (nothing external runs until first use)
    - Merged workspace environment and decrypted secrets
    - Cluster summary lookup through the cache
    """

    def __init__(self, runtime: Runtime):
        super().__init__(runtime)
        self.env_service: Optional[EnvService] = None
        self.secret_service: Optional[SecretService] = None
        self.tofu_service: Optional[TofuService] = None
        self.ansible_service: Optional[AnsibleService] = None
        self.ssh_service: Optional[SSHService] = None
        self.kubectl_service: Optional[KubectlService] = None
        self.addon_service: Optional[AddonService] = None
        self._env: Optional[Dict[str, str]] = None

    @property
    def workspace(self) -> str:
        return self.store.get_current_context()

    def ensure_env_service(self) -> EnvService:
        if self.env_service is None:
            self.env_service = EnvService(self.store)
        return self.env_service

    def ensure_secret_service(self) -> SecretService:
        if self.secret_service is None:
            self.secret_service = SecretService(
                self.store,
                self.runtime.timeouts,
                self.logger,
                ttl=self.settings.secrets_ttl,
            )
        return self.secret_service

    def ensure_tofu_service(self, with_secrets: bool = False) -> TofuService:
        """
        OpenTofu service for the active workspace.

        Args:
            with_secrets: Export env + secrets as TF_VAR_* (needed for
                plan/apply/destroy, not for workspace or output queries)
        """
        if self.tofu_service is None:
            self.tofu_service = TofuService(self.store, self.runtime.timeouts, self.logger)
        if with_secrets:
            self.tofu_service.env.update(self.tofu_env())
        return self.tofu_service

    def ensure_ansible_service(self) -> AnsibleService:
        if self.ansible_service is None:
            self.ansible_service = AnsibleService(
                self.store,
                self.ensure_secret_service(),
                self.runtime.timeouts,
                self.runtime.retry,
                self.logger,
                remote_user=self.load_secrets().get("VM_USERNAME"),
            )
        return self.ansible_service

    def ensure_ssh_service(self) -> SSHService:
        if self.ssh_service is None:
            self.ssh_service = SSHService(
                self.load_secrets().get("VM_USERNAME", ""),
                self.runtime.timeouts,
                self.runtime.retry,
                self.cache,
            )
        return self.ssh_service

    def ensure_kubectl_service(self) -> KubectlService:
        if self.kubectl_service is None:
            self.kubectl_service = KubectlService(self.runtime.timeouts)
        return self.kubectl_service

    def ensure_addon_service(self) -> AddonService:
        if self.addon_service is None:
            self.addon_service = AddonService(self.store)
        return self.addon_service

    def load_env(self) -> Dict[str, str]:
        """Merged cpc.env + envs/<workspace>.env (read once per command)."""
        if self._env is None:
            self._env = self.ensure_env_service().load(self.workspace)
        return self._env

    def load_secrets(self, force: bool = False) -> SecretsBundle:
        return self.ensure_secret_service().load(force=force)

    def tofu_env(self) -> Dict[str, str]:
        """TF_VAR_* overrides from the workspace env and the decrypted secrets."""
        env = self.ensure_env_service().tofu_env(self.load_env())
        for key, value in self.load_secrets().values.items():
            env.setdefault(f"TF_VAR_{key.lower()}", value)
        return env

    def cluster_summary(self, quick: bool = False) -> ClusterSummary:
        """
        Cluster summary of the active workspace.

        Args:
            quick: Use only the cached copy (aborts if there is none)

        Returns:
            ClusterSummary

        Raises:
            CommandAborted: quick=True and nothing is cached
            ValidationError: The infrastructure output is malformed
        """
        if quick:
            entry = self.cache.read(CACHE_CLUSTER_SUMMARY, TTLClass.LONG)
            if entry is None:
                self.errors.handle(
                    ErrorKind.EXECUTION,
                    NO_CACHED_CLUSTER_DATA,
                    Severity.MEDIUM,
                    ErrorAction.ABORT,
                )
            return self._parse_summary(entry.payload)

        def produce() -> dict:
            tofu = self.ensure_tofu_service()
            tofu.select_workspace(self.workspace)
            with self.logger.progress("Querying cluster summary"):
                data = tofu.output_json(CACHE_CLUSTER_SUMMARY)
            return self._parse_summary(data).to_dict()

        payload = self.cache.cached_call(CACHE_CLUSTER_SUMMARY, TTLClass.LONG, produce)
        return self._parse_summary(payload)

    def _parse_summary(self, data) -> ClusterSummary:
        try:
            return ClusterSummary.from_output(data)
        except ValueError as e:
            raise ValidationError("Malformed cluster summary", context=str(e))

    def control_plane(self, summary: Optional[ClusterSummary] = None) -> ClusterNode:
        """
        First control-plane node with an IP.

        Raises:
            CommandAborted: If the cluster has no control plane
        """
        summary = summary or self.cluster_summary()
        node = summary.control_plane()
        if node is None or not node.ip:
            self.errors.handle(
                ErrorKind.CONFIGURATION,
                f"No control plane node found in workspace '{self.workspace}'",
                Severity.HIGH,
                ErrorAction.ABORT,
                context="Run: cpc deploy apply",
            )
        return node

    def switch_workspace(self, name: str) -> str:
        """
        Make `name` the active workspace and select (creating if needed)
        the OpenTofu workspace of the same name.

        Returns:
            The previously active workspace
        """
        old = self.store.set_context(name)
        self._env = None
        if old != name:
            self.logger.debug(f"Cache for '{old}' invalidated")
        if not self.store.has_repo_path():
            self.logger.warning("Repository path is not configured; OpenTofu workspace not selected")
            return old
        self.ensure_tofu_service().select_workspace(name, create=True)
        return old
