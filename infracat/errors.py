"""Exception hierarchy for the launcher."""


class InfracatError(Exception):
    """Base class for every error the launcher raises on purpose."""


class ConfigError(InfracatError):
    """Config, field catalog or presets could not be loaded. Fatal at startup."""


class FormValidationError(InfracatError):
    """A form value cannot be encoded for its field kind."""

    def __init__(self, key: str, message: str):
        super().__init__(f"{key}: {message}")
        self.key = key


class DeploymentExistsError(InfracatError):
    """A deployment with the same identity already exists on disk."""


class ProvisionError(InfracatError):
    """The provisioning tool reported a failure."""

    def __init__(self, action: str, output: str = ""):
        super().__init__(f"{action} failed")
        self.action = action
        self.output = output


class StateWriteError(InfracatError):
    """The lifecycle state record could not be written."""


class InventoryError(InfracatError):
    """Secret or inventory lookup failed."""
