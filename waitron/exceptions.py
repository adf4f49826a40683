"""Waitron error taxonomy.

Every error carries the HTTP status the gateway answers with and a terse,
non-sensitive message for the caller. The full detail goes to the log.
"""


class WaitronError(Exception):
    """Base class for all Waitron errors."""

    status_code = 500
    message = "Internal error"

    def __init__(self, detail: str = "", message: str = None):
        super().__init__(detail or message or self.message)
        self.detail = detail or message or self.message
        if message:
            self.message = message


class ConfigurationError(WaitronError):
    """Configuration file is missing or invalid."""

    message = "Invalid configuration"


class DefinitionNotFoundError(WaitronError):
    """No machine or VM definition exists for the hostname."""

    status_code = 404
    message = "Unable to find host definition"


class DefinitionError(WaitronError):
    """A definition exists but cannot be used to build the machine."""

    message = "Invalid host definition"


class NotBuildingError(WaitronError):
    """Hostname, token or MAC address has no live build."""

    status_code = 400
    message = "Not in build mode or definition does not exist"


class AuthorizationError(WaitronError):
    """Token does not match the token issued for the hostname."""

    status_code = 401
    message = "Invalid Token"


class HookExecutionError(WaitronError):
    """A pre- or post-hook exited non-zero or could not be started."""

    message = "Cannot execute hooks"

    def __init__(self, detail: str = "", message: str = None, hook: str = None, returncode: int = None):
        super().__init__(detail, message)
        self.hook = hook
        self.returncode = returncode


class RenderError(WaitronError):
    """Template file is missing or references an undefined field."""

    message = "Unable to render template"


class UnknownTemplateError(RenderError):
    """Requested template kind is not preseed, finish or cloud-init."""

    status_code = 400
    message = "Unknown template"


class RegistryError(WaitronError):
    """Registry indices disagree with each other."""

    message = "Internal registry error"
