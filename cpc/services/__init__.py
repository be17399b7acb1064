"""
CPC Services Layer

Business logic and external-tool access used by the commands.
"""

from .cache_service import CacheEntry, CacheService, TTLClass
from .context_service import ContextStore
from .env_service import EnvService
from .secret_service import SecretService
from .tofu_service import TofuService
from .ansible_service import AnsibleService, PlaybookOptions
from .ssh_service import SSHService
from .kubectl_service import KubectlService
from .addon_service import AddonService

__all__ = [
    "CacheEntry",
    "CacheService",
    "TTLClass",
    "ContextStore",
    "EnvService",
    "SecretService",
    "TofuService",
    "AnsibleService",
    "PlaybookOptions",
    "SSHService",
    "KubectlService",
    "AddonService",
]
