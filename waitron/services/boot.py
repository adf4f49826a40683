"""
Boot descriptor provider.

Answers the network-boot protocol layer with the kernel, initrd set and
command line of a machine in build mode, looked up by MAC address.
"""

import structlog

from waitron import metrics
from waitron.config import WaitronConfig
from waitron.exceptions import NotBuildingError
from waitron.models import BootDescriptor, Machine, normalize_mac
from waitron.services.lifecycle import BuildController
from waitron.services.registry import StateRegistry
from waitron.services.templates import TemplateRenderer

logger = structlog.get_logger()


def join_url(base: str, path: str) -> str:
    """Join a kernel or initrd path onto an image URL.

    Absolute URLs are returned unchanged.
    """
    if "://" in path or not base:
        return path
    return f"{base.rstrip('/')}/{path.lstrip('/')}"


class BootDescriptorProvider:
    """Builds boot descriptors for machines in build mode."""

    def __init__(
        self,
        config: WaitronConfig,
        registry: StateRegistry,
        controller: BuildController,
        renderer: TemplateRenderer,
    ):
        self.config = config
        self.registry = registry
        self.controller = controller
        self.renderer = renderer

    def describe(self, machine: Machine) -> BootDescriptor:
        """Derive the descriptor of a machine without touching build state."""
        cmdline = self.renderer.render_string(
            machine.cmdline,
            machine.template_context(self.config.base_url),
        )
        return BootDescriptor(
            kernel=join_url(machine.image_url, machine.kernel),
            initrd=[join_url(machine.image_url, i) for i in machine.initrd],
            cmdline=" ".join(cmdline.split()),
        )

    def boot(self, macaddr: str) -> BootDescriptor:
        """Descriptor for the machine building under a MAC address.

        Serving a descriptor moves the build to Installing.

        Raises:
            NotBuildingError: No machine is building under the MAC address
        """
        mac = normalize_mac(macaddr)
        machine = self.registry.lookup_by_mac(mac)
        if machine is None:
            metrics.BOOT_DESCRIPTORS_SERVED.labels(result="not_building").inc()
            logger.info("boot_not_building", macaddr=mac)
            raise NotBuildingError(f"No build registered for MAC {mac}")

        descriptor = self.describe(machine)
        self.controller.mark_installing(machine)

        metrics.BOOT_DESCRIPTORS_SERVED.labels(result="ok").inc()
        logger.info(
            "boot_descriptor_served",
            macaddr=mac,
            hostname=machine.hostname,
            rescue=machine.rescue,
            kernel=descriptor.kernel,
        )
        return descriptor
