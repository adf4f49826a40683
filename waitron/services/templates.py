"""
Installer template rendering and dispatch.

Templates are Jinja2 files rendered with the machine context. Undefined
variables are errors, so a template either renders completely or not at all.
"""

from pathlib import Path
from typing import Any, Dict

import structlog
from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError, TemplateNotFound

from waitron import metrics
from waitron.config import WaitronConfig
from waitron.exceptions import RenderError, UnknownTemplateError
from waitron.models import Machine
from waitron.services.hooks import PRE_HOOK, HookExecutor
from waitron.services.lifecycle import BuildController

logger = structlog.get_logger()

PRESEED = "preseed"
FINISH = "finish"
CLOUD_INIT = "cloud-init"
TEMPLATE_KINDS = (PRESEED, FINISH, CLOUD_INIT)


class TemplateRenderer:
    """Renders template files and inline template strings."""

    def __init__(self, search_path: str):
        self.search_path = search_path
        self.env = self._environment(FileSystemLoader(search_path))
        self._inline = self._environment(None)

    @staticmethod
    def _environment(loader) -> Environment:
        return Environment(
            loader=loader,
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
            autoescape=False,
        )

    def render_file(self, path: Path, context: Dict[str, Any]) -> str:
        """Render a template file given as an absolute path."""
        try:
            source = Path(path).read_text()
        except OSError as e:
            raise RenderError(f"Template {path} not readable: {e}") from e
        try:
            template = self.env.from_string(source)
        except TemplateError as e:
            raise RenderError(f"Template {path} is invalid: {e}") from e
        return self._render(template, context, str(path))

    def render_template(self, name: str, context: Dict[str, Any]) -> str:
        """Render a template by name, relative to the search path."""
        try:
            template = self.env.get_template(name)
        except TemplateNotFound as e:
            raise RenderError(f"Template {name} not found in {self.search_path}") from e
        except TemplateError as e:
            raise RenderError(f"Template {name} is invalid: {e}") from e
        return self._render(template, context, name)

    def render_string(self, source: str, context: Dict[str, Any]) -> str:
        """Render an inline template such as a kernel command line."""
        try:
            template = self._inline.from_string(source)
        except TemplateError as e:
            raise RenderError(f"Inline template is invalid: {e}") from e
        return self._render(template, context, "<inline>")

    @staticmethod
    def _render(template, context: Dict[str, Any], name: str) -> str:
        try:
            return template.render(context)
        except TemplateError as e:
            raise RenderError(f"Unable to render {name}: {e}") from e


class TemplateDispatcher:
    """Resolves and renders the artifact requested for a build."""

    def __init__(
        self,
        config: WaitronConfig,
        controller: BuildController,
        hooks: HookExecutor,
        renderer: TemplateRenderer = None,
    ):
        self.config = config
        self.controller = controller
        self.hooks = hooks
        self.renderer = renderer or TemplateRenderer(config.template_path)

    def render(self, kind: str, hostname: str, token: str) -> str:
        """Render a template for an authorized build.

        Args:
            kind: preseed, finish or cloud-init
            hostname: Host being built
            token: Build token presented by the caller

        Raises:
            UnknownTemplateError: kind is not a known template
            NotBuildingError / AuthorizationError: see BuildController.authorize
            HookExecutionError: A pre-hook failed (preseed only)
            RenderError: Template missing or referencing undefined fields
        """
        if kind not in TEMPLATE_KINDS:
            raise UnknownTemplateError(f"Unknown template kind {kind!r}")

        machine = self.controller.authorize(hostname, token)

        if kind == PRESEED:
            self.hooks.run(PRE_HOOK, machine)
            rendered = self._render_named(kind, machine, machine.preseed)
            self.controller.mark_installing(machine)
        elif kind == FINISH:
            rendered = self._render_named(kind, machine, machine.finish)
            self.controller.mark_installed(machine)
        else:
            rendered = self.render_cloud_init(machine)

        return rendered

    def _render_named(self, kind: str, machine: Machine, name: str) -> str:
        if not name:
            metrics.TEMPLATES_RENDERED.labels(template=kind, result="error").inc()
            raise RenderError(f"No {kind} template configured for {machine.hostname}")
        try:
            rendered = self.renderer.render_template(name, machine.template_context(self.config.base_url))
        except RenderError as e:
            metrics.TEMPLATES_RENDERED.labels(template=kind, result="error").inc()
            logger.error("template_render_failed", template=kind, hostname=machine.hostname, error=e.detail)
            raise

        metrics.TEMPLATES_RENDERED.labels(template=kind, result="ok").inc()
        logger.info("template_rendered", template=kind, name=name, hostname=machine.hostname)
        return rendered

    def render_cloud_init(self, machine: Machine) -> str:
        """Render the host's own ``<machinepath>/<hostname>.cloud-init`` document."""
        path = Path(self.config.machine_path) / f"{machine.hostname}.cloud-init"
        try:
            rendered = self.renderer.render_file(path, machine.template_context(self.config.base_url))
        except RenderError as e:
            metrics.TEMPLATES_RENDERED.labels(template=CLOUD_INIT, result="error").inc()
            logger.error("template_render_failed", template=CLOUD_INIT, hostname=machine.hostname, error=e.detail)
            raise

        metrics.TEMPLATES_RENDERED.labels(template=CLOUD_INIT, result="ok").inc()
        logger.info("template_rendered", template=CLOUD_INIT, hostname=machine.hostname)
        return rendered
