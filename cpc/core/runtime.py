"""
Runtime

Per-invocation composition root. Built once by the root command group and
handed to every command through click's context object.
"""

from dataclasses import dataclass
from typing import Optional

from rich.console import Console

from cpc.config import Settings
from cpc.core.error_handler import ErrorHandler
from cpc.core.recovery import RecoveryEngine
from cpc.core.retry import RetryEngine
from cpc.core.runner import CommandRunner
from cpc.core.timeout import TimeoutEngine
from cpc.logger import CpcLogger
from cpc.services.cache_service import CacheService
from cpc.services.context_service import ContextStore


@dataclass
class Runtime:
    """Everything a command needs that outlives a single service call."""

    settings: Settings
    logger: CpcLogger
    errors: ErrorHandler
    runner: CommandRunner
    retry: RetryEngine
    timeouts: TimeoutEngine
    recovery: RecoveryEngine
    store: ContextStore
    cache: CacheService

    @property
    def console(self) -> Console:
        return self.logger.console

    @classmethod
    def create(
        cls,
        settings: Optional[Settings] = None,
        debug: bool = False,
        console: Optional[Console] = None,
        runner: Optional[CommandRunner] = None,
    ) -> "Runtime":
        """
        Wire up the engines and stores. Nothing is written to disk here.

        Args:
            settings: Resolved settings (read from the environment by default)
            debug: Force debug output on
            console: Rich console (a new one by default)
            runner: Process runner (a real CommandRunner by default)

        Returns:
            Runtime
        """
        settings = settings or Settings.from_env()
        settings.debug = settings.debug or debug

        logger = CpcLogger(debug=settings.debug, console=console)
        errors = ErrorHandler(logger)
        if runner is None:
            runner = CommandRunner(logger)
        elif getattr(runner, "logger", None) is None:
            runner.logger = logger

        store = ContextStore(settings)
        cache = CacheService(
            cache_dir=settings.cache_dir,
            context_provider=store.get_current_context,
            short_ttl=settings.short_ttl,
            long_ttl=settings.long_ttl,
            ttl_overrides=settings.ttl_overrides,
            logger=logger,
        )
        store.add_switch_listener(lambda old, new: cache.invalidate(old))

        return cls(
            settings=settings,
            logger=logger,
            errors=errors,
            runner=runner,
            retry=RetryEngine(runner, errors, logger),
            timeouts=TimeoutEngine(runner, errors, logger, settings.timeouts),
            recovery=RecoveryEngine(runner, logger, settings.reports_dir),
            store=store,
            cache=cache,
        )
