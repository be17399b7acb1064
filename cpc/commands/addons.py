"""CPC CLI - Cluster addon management"""

import click

from cpc.base import WorkspaceCommand
from cpc.constants import (
    ALL_ADDONS,
    DEFAULT_COREDNS_FALLBACK_SERVER,
    PLAYBOOK_CONFIGURE_COREDNS,
    PLAYBOOK_UPGRADE_ADDONS,
)
from cpc.core.validators import validate_domains, validate_ip_address
from cpc.exceptions import InputError
from cpc.models.errors import ErrorAction, ErrorKind, Severity
from cpc.models.options import AddonOptions, CorednsOptions
from cpc.services import PlaybookOptions


class UpgradeAddonsCommand(WorkspaceCommand):
    """Install or upgrade one addon (or all of them)."""

    multi_step = True

    def __init__(self, runtime, options: AddonOptions):
        super().__init__(runtime)
        self.options = options

    def execute(self) -> None:
        addon = self.options.addon or ALL_ADDONS
        recovery = self.runtime.recovery

        validation = self.ensure_addon_service().check(addon)
        if not validation.is_valid:
            recovery.checkpoint("addon_validation_failed", data={"addon": addon})
            self.errors.handle(
                ErrorKind.VALIDATION,
                f"Invalid addon: '{addon}'",
                Severity.MEDIUM,
                ErrorAction.ABORT,
                context="; ".join(validation.errors),
            )

        self.show_header(
            "Upgrade Addons",
            workspace=self.workspace,
            details={"Addon": addon, "Version": self.options.version or "default"},
        )
        if not self.options.yes and not self.confirm(f"Install/upgrade '{addon}' in '{self.workspace}'?", default=True):
            self.logger.info("Upgrade cancelled")
            return

        self.open_log("upgrade-addons")
        recovery.checkpoint("addon_upgrade_start", data={"addon": addon, "version": self.options.version})

        extra_vars = {"addon_name": addon}
        if self.options.version:
            extra_vars["addon_version"] = self.options.version

        ansible = self.ensure_ansible_service()
        result = recovery.ansible_operation(
            lambda: ansible.run_playbook(PLAYBOOK_UPGRADE_ADDONS, PlaybookOptions(extra_vars=extra_vars)),
            PLAYBOOK_UPGRADE_ADDONS,
        )
        if result.is_failure:
            self.errors.handle(
                ErrorKind.EXECUTION,
                f"Addon upgrade failed for '{addon}' (exit code: {result.returncode})",
                Severity.HIGH,
                ErrorAction.ABORT,
            )

        recovery.checkpoint("addon_upgrade_complete", data={"addon": addon})
        self.logger.success(f"Addon '{addon}' installed/upgraded")


class ConfigureCorednsCommand(WorkspaceCommand):
    """Forward local domains from CoreDNS to an internal DNS server."""

    multi_step = True

    def __init__(self, runtime, options: CorednsOptions):
        super().__init__(runtime)
        self.options = options

    def execute(self) -> None:
        # Explicit values are checked before anything else is loaded
        if self.options.domains is not None:
            validate_domains(self.options.domains)
        if self.options.dns_server is not None:
            validate_ip_address(self.options.dns_server)

        env = self.load_env()
        dns_server = validate_ip_address(
            self.options.dns_server or env.get("PRIMARY_DNS_SERVER") or DEFAULT_COREDNS_FALLBACK_SERVER
        )
        raw_domains = self.options.domains or env.get("VM_DOMAIN", "").lstrip(".")
        if not raw_domains:
            raise InputError("No domains given", context="Use --domains or set VM_DOMAIN in the workspace env")
        domains = validate_domains(raw_domains)

        self.show_header(
            "Configure CoreDNS",
            workspace=self.workspace,
            details={"DNS server": dns_server, "Domains": ", ".join(domains)},
        )
        if not self.options.yes and not self.confirm("Apply this CoreDNS configuration?", default=True):
            self.logger.info("Configuration cancelled")
            return

        self.open_log("configure-coredns")
        options = PlaybookOptions(extra_vars={"pihole_dns_server": dns_server, "local_domains": domains})
        ansible = self.ensure_ansible_service()
        result = self.runtime.recovery.ansible_operation(
            lambda: ansible.run_playbook(PLAYBOOK_CONFIGURE_COREDNS, options),
            PLAYBOOK_CONFIGURE_COREDNS,
        )
        if result.is_failure:
            self.errors.handle(
                ErrorKind.EXECUTION,
                f"CoreDNS configuration failed (exit code: {result.returncode})",
                Severity.HIGH,
                ErrorAction.ABORT,
            )
        self.logger.success(f"CoreDNS forwards {', '.join(domains)} to {dns_server}")


@click.command(name="upgrade-addons")
@click.argument("addon_name", required=False)
@click.option("--addon", help="Addon to install/upgrade (default: all)")
@click.option("--version", "addon_version", help="Addon version")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_obj
def upgrade_addons(runtime, addon_name, addon, addon_version, yes):
    """
    Install or upgrade cluster addons

    \b
    Examples:
      cpc upgrade-addons                      # All addons
      cpc upgrade-addons metallb
      cpc upgrade-addons --addon cert-manager --version v1.16.2
    """
    options = AddonOptions(addon=addon or addon_name, version=addon_version, yes=yes)
    cmd = UpgradeAddonsCommand(runtime, options)
    cmd.run()


@click.command(name="configure-coredns")
@click.option("--dns-server", help="DNS server for local domains (default: PRIMARY_DNS_SERVER)")
@click.option("--domains", help="Comma separated domains (default: VM_DOMAIN)")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_obj
def configure_coredns(runtime, dns_server, domains, yes):
    """Forward local domains from CoreDNS to an internal DNS server"""
    cmd = ConfigureCorednsCommand(runtime, CorednsOptions(dns_server=dns_server, domains=domains, yes=yes))
    cmd.run()
