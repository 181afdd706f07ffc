from __future__ import annotations


class ProvisionError(RuntimeError):
    """Base class for failures that abort a provisioning run."""


class UnsupportedEnvironment(ProvisionError):
    pass


class ConfigError(ProvisionError):
    pass


class CommandError(ProvisionError):
    def __init__(self, message: str, *, argv: list[str] | None = None, returncode: int | None = None):
        super().__init__(message)
        self.argv = argv or []
        self.returncode = returncode


class VerificationError(ProvisionError):
    """The mutation appeared to run but live state disagrees."""


class UserAborted(ProvisionError):
    pass


class StepDeferred(Exception):
    """Raised by a step that did not complete but must not abort the run."""
