"""
Waitron core services.

WaitronService owns the single state registry and wires every component
around it. One instance per running process, or per test.
"""

from typing import Optional

import structlog

from waitron.config import WaitronConfig
from waitron.definitions import ManifestSource
from waitron.services.boot import BootDescriptorProvider
from waitron.services.hooks import HookExecutor
from waitron.services.lifecycle import BuildController
from waitron.services.registry import StateRegistry
from waitron.services.tasks import TaskTracker
from waitron.services.templates import TemplateDispatcher, TemplateRenderer
from waitron.services.watchdog import StaleBuildWatchdog

logger = structlog.get_logger()


class WaitronService:
    """Root object holding the registry and the components sharing it."""

    def __init__(self, config: WaitronConfig, registry: Optional[StateRegistry] = None):
        self.config = config
        self.registry = registry if registry is not None else StateRegistry()
        self.source = ManifestSource(config.machine_path, config.vm_path)
        self.hooks = HookExecutor(config.hook_path)
        self.renderer = TemplateRenderer(config.template_path)
        self.tasks = TaskTracker(name="waitron-recovery")

        self.controller = BuildController(config, self.registry, self.source, self.hooks)
        self.templates = TemplateDispatcher(config, self.controller, self.hooks, self.renderer)
        self.boot = BootDescriptorProvider(config, self.registry, self.controller, self.renderer)
        self.watchdog = StaleBuildWatchdog(
            self.registry,
            self.tasks,
            self.renderer,
            interval=config.stale_build_check_frequency,
            base_url=config.base_url,
        )

    def start(self) -> None:
        self.watchdog.start()

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """Stop the watchdog and wait for outstanding recovery work."""
        self.watchdog.stop(timeout)
        if not self.tasks.join(timeout):
            logger.warning("shutdown_tasks_outstanding", pending=len(self.tasks.pending))


__all__ = ["WaitronService"]
