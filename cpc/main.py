#!/usr/bin/env python3
"""CPC CLI - Main entry point"""

import functools
import sys

import rich_click as click
from rich.console import Console

from cpc import __version__
from cpc.commands.addons import configure_coredns, upgrade_addons
from cpc.commands.ansible import run_ansible, run_command
from cpc.commands.cluster import bootstrap, get_kubeconfig, reset_all_nodes, upgrade_k8s
from cpc.commands.deploy import deploy
from cpc.commands.dns_ssl import dns_ssl
from cpc.commands.nodes import (
    add_nodes,
    drain_node,
    prepare_node,
    remove_nodes,
    reset_node,
    upgrade_node,
)
from cpc.commands.ssh import clear_ssh_hosts, clear_ssh_maps
from cpc.commands.status import cluster_info, status
from cpc.commands.workspace import (
    auto,
    clear_cache,
    clone_workspace,
    ctx,
    delete_workspace,
    list_workspaces,
    load_secrets,
    setup_cpc,
)
from cpc.core.runtime import Runtime
from cpc.exceptions import CpcError

# Rich-Click help styling
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.USE_MARKDOWN = False
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.MAX_WIDTH = 100
click.rich_click.STYLE_COMMAND = "bold cyan"
click.rich_click.STYLE_OPTION = "bold magenta"
click.rich_click.STYLE_SWITCH = "bold green"
click.rich_click.STYLE_ARGUMENT = "bold yellow"
click.rich_click.STYLE_USAGE = "bold yellow"
click.rich_click.STYLE_USAGE_COMMAND = "bold cyan"
click.rich_click.STYLE_HELPTEXT_FIRST_LINE = "bold white"
click.rich_click.STYLE_OPTIONS_PANEL_BORDER = "cyan"
click.rich_click.STYLE_COMMANDS_PANEL_BORDER = "cyan"
click.rich_click.ERRORS_EPILOGUE = ""

DEBUG_FLAGS = ("--debug", "-d")
DEBUG_META_KEY = "cpc.debug"

console = Console(stderr=True)


def handle_cli_errors(func):
    """Decorator to handle CLI errors gracefully."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except CpcError as e:
            console.print(f"\n[bold red]✗ Error:[/bold red] {e.message}", soft_wrap=True, highlight=False, markup=False)
            if e.context:
                console.print(e.context, style="dim", soft_wrap=True, highlight=False, markup=False)
            sys.exit(e.exit_code)
        except KeyboardInterrupt:
            console.print("\n[yellow]⚠ Operation cancelled by user[/yellow]")
            sys.exit(130)
        except Exception as e:
            console.print(f"\n[bold red]✗ Unexpected error:[/bold red] {type(e).__name__}: {e}", highlight=False)
            if "--debug" in sys.argv or "-d" in sys.argv:
                console.print_exception()
            sys.exit(199)

    return wrapper


class CpcGroup(click.RichGroup):
    """
    Root command group.

    - --debug / -d is accepted anywhere before a literal '--'
    - unknown verbs fail with "Unknown command"
    """

    def parse_args(self, ctx, args):
        debug = False
        remaining = []
        for index, arg in enumerate(args):
            if arg == "--":
                remaining.extend(args[index:])
                break
            if arg in DEBUG_FLAGS:
                debug = True
                continue
            remaining.append(arg)
        ctx.meta[DEBUG_META_KEY] = debug
        return super().parse_args(ctx, remaining)

    def resolve_command(self, ctx, args):
        name = args[0] if args else ""
        if name and not name.startswith("-") and self.get_command(ctx, name) is None and not ctx.resilient_parsing:
            ctx.fail(f"Unknown command: {name}. Run 'cpc --help' for available commands.")
        return super().resolve_command(ctx, args)


@click.group(cls=CpcGroup, context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--debug", "-d", is_flag=True, help="Show debug output (accepted anywhere on the command line)")
@click.version_option(version=__version__, prog_name="cpc")
@click.pass_context
def cli(ctx: click.Context, debug: bool) -> None:
    """
    CPC - Proxmox + OpenTofu + Ansible Kubernetes cluster manager

    \b
    Quick Start:
      cpc setup-cpc                 # Record the repository root
      cpc ctx ubuntu                # Select a workspace
      cpc deploy apply              # Create the VMs
      cpc bootstrap                 # Install Kubernetes
      cpc get-kubeconfig            # Merge cluster access into ~/.kube/config

    \b
    Daily Workflow:
      cpc status --quick            # Cached overview, no remote calls
      cpc cluster-info              # VM list from OpenTofu
      cpc upgrade-addons metallb    # Install/upgrade an addon
      cpc add-nodes --target-hosts 10.10.10.21
    """
    debug = debug or ctx.meta.get(DEBUG_META_KEY, False)

    if ctx.obj is None:
        try:
            ctx.obj = Runtime.create(debug=debug)
        except CpcError as e:
            console.print(f"✗ {e.format_message()}", style="bold red", highlight=False, markup=False)
            ctx.exit(e.exit_code)
    elif debug:
        ctx.obj.settings.debug = True
        ctx.obj.logger.set_debug(True)


# Workspace
cli.add_command(ctx)
cli.add_command(setup_cpc)
cli.add_command(list_workspaces)
cli.add_command(clone_workspace)
cli.add_command(delete_workspace)
cli.add_command(load_secrets)
cli.add_command(load_secrets, name="load-secrets")
cli.add_command(auto)
cli.add_command(clear_cache)
# Infrastructure
cli.add_command(deploy)
# Cluster
cli.add_command(bootstrap)
cli.add_command(get_kubeconfig)
cli.add_command(upgrade_k8s)
cli.add_command(reset_all_nodes)
# Addons
cli.add_command(upgrade_addons)
cli.add_command(configure_coredns)
# Certificates and DNS
cli.add_command(dns_ssl)
# Nodes
cli.add_command(add_nodes)
cli.add_command(remove_nodes)
cli.add_command(drain_node)
cli.add_command(upgrade_node)
cli.add_command(reset_node)
cli.add_command(prepare_node)
# Ansible
cli.add_command(run_ansible)
cli.add_command(run_command)
# SSH
cli.add_command(clear_ssh_hosts)
cli.add_command(clear_ssh_maps)
# Status
cli.add_command(status)
cli.add_command(cluster_info)


@handle_cli_errors
def main():
    """Main entry point with error handling."""
    cli()


if __name__ == "__main__":
    main()
