# errors.py


class WizardError(Exception):
    """Base class for all installer wizard errors."""


class InputValidationError(WizardError, ValueError):
    """User-correctable input problem, shown inline next to the field."""


class AsyncCheckError(WizardError):
    """A slow background check failed; the operator may retry or edit."""


class ConstructionError(WizardError):
    """A renderer primitive could not be built. Fatal."""


class NoInstallableDiskError(ConstructionError):
    """Block device enumeration produced no disk to install on."""


class MergeError(WizardError):
    """An external config could not be parsed or merged."""


class InstallError(WizardError):
    """Install preparation or the installer run failed."""
