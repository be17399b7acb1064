"""
Addon Service

Discovers installable addons and validates addon names before any
playbook is started.
"""

from typing import List

from cpc.constants import ADDONS_DIRNAME, ALL_ADDONS, ANSIBLE_DIRNAME, KNOWN_ADDONS
from cpc.models.results import ValidationResult
from cpc.services.context_service import ContextStore


class AddonService:
    """Addon discovery (built-in list + ansible/addons/<category>/<name>.yml)."""

    def __init__(self, store: ContextStore):
        self.store = store

    def discover(self) -> List[str]:
        names = set(KNOWN_ADDONS)
        if self.store.has_repo_path():
            addons_dir = self.store.get_repo_path() / ANSIBLE_DIRNAME / ADDONS_DIRNAME
            if addons_dir.is_dir():
                names.update(path.stem for path in addons_dir.glob("*/*.yml"))
        return sorted(names)

    def check(self, addon: str) -> ValidationResult:
        result = ValidationResult()
        if addon == ALL_ADDONS:
            return result
        available = self.discover()
        if addon not in available:
            result.add_error(f"Unknown addon '{addon}'. Available: {ALL_ADDONS}, {', '.join(available)}")
        return result
