"""
Input Validators

Checks run at the command boundary, before any external tool is invoked.
"""

import ipaddress
import re

from cpc.constants import (
    DOMAIN_LIST_PATTERN,
    HOST_PATTERN,
    K8S_VERSION_PATTERN,
    REMOTE_PATH_PATTERN,
    RESERVED_WORKSPACE_NAMES,
    WORKSPACE_NAME_MAX_LENGTH,
    WORKSPACE_NAME_PATTERN,
)
from cpc.exceptions import ValidationError
from cpc.models.results import ValidationResult


def check_workspace_name(name: str) -> ValidationResult:
    """Collect every problem with a workspace name."""
    result = ValidationResult()
    if not name:
        result.add_error("Workspace name must not be empty")
        return result
    if not re.match(WORKSPACE_NAME_PATTERN, name):
        result.add_error("Workspace name may only contain letters, digits, '-' and '_'")
    if len(name) > WORKSPACE_NAME_MAX_LENGTH:
        result.add_error(f"Workspace name must be at most {WORKSPACE_NAME_MAX_LENGTH} characters")
    if name.lower() in RESERVED_WORKSPACE_NAMES:
        result.add_error(f"'{name}' is a reserved name")
    return result


def validate_workspace_name(name: str) -> str:
    """
    Validate a workspace name.

    Raises:
        ValidationError: Listing every problem found
    """
    result = check_workspace_name(name)
    if not result.is_valid:
        raise ValidationError(f"Invalid workspace name '{name}'", context="; ".join(result.errors))
    return name


def validate_ip_address(value: str) -> str:
    """
    Validate a single IPv4/IPv6 address.

    Raises:
        ValidationError: Naming the malformed address
    """
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError:
        raise ValidationError(f"Invalid IP address: '{value}'")


def validate_target_hosts(hosts: list[str]) -> list[str]:
    """
    Validate a list of target host addresses.

    Raises:
        ValidationError: If the list is empty or any entry is not an IP address
    """
    if not hosts:
        raise ValidationError("No target hosts given", context="Use --target-hosts <ip>[,<ip>...]")

    invalid = []
    for host in hosts:
        try:
            ipaddress.ip_address(host)
        except ValueError:
            invalid.append(host)
    if invalid:
        raise ValidationError(
            f"Invalid IP address in --target-hosts: {', '.join(repr(h) for h in invalid)}",
            context="Expected comma separated IPv4/IPv6 addresses",
        )
    return [str(ipaddress.ip_address(host)) for host in hosts]


def validate_domains(domains: str) -> list[str]:
    """
    Validate a comma separated domain list.

    Raises:
        ValidationError: If the list is malformed
    """
    if not re.match(DOMAIN_LIST_PATTERN, domains or ""):
        raise ValidationError(f"Invalid domains format: '{domains}'", context="Expected e.g. example.com,example.org")
    return domains.split(",")


def validate_domain(domain: str) -> str:
    """Validate exactly one domain name."""
    domains = validate_domains(domain)
    if len(domains) != 1:
        raise ValidationError(f"Expected a single domain, got '{domain}'")
    return domains[0]


def validate_host(value: str) -> str:
    """
    Validate an inventory host: an IP address or a host name.

    Raises:
        ValidationError: Naming the malformed value
    """
    value = (value or "").strip()
    try:
        return str(ipaddress.ip_address(value))
    except ValueError:
        pass
    if not re.match(HOST_PATTERN, value):
        raise ValidationError(f"Invalid host: '{value}'", context="Expected an IP address or a host name")
    return value


def validate_k8s_version(version: str) -> str:
    """Validate a Kubernetes version such as 1.31, 1.31.2 or v1.31.2."""
    if not re.match(K8S_VERSION_PATTERN, version or ""):
        raise ValidationError(f"Invalid Kubernetes version: '{version}'", context="Expected e.g. 1.31 or v1.31.2")
    return version


def validate_remote_path(path: str) -> str:
    """
    Validate an absolute file path that is passed to a remote shell.

    Raises:
        ValidationError: If the path is relative, climbs with '..' or
            contains characters the remote shell would interpret
    """
    if not re.match(REMOTE_PATH_PATTERN, path or "") or ".." in path.split("/"):
        raise ValidationError(
            f"Invalid remote path: '{path}'",
            context="Use an absolute path of letters, digits, '.', '_', '-' and '/'",
        )
    return path
