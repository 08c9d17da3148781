class PreconditionError(ValueError):
    """Raised when a run cannot start: bad split, empty partition, tiny classes.

    Always raised before any configuration is fit.
    """


class NoViableConfigurationError(RuntimeError):
    """Raised when every configuration in the grid failed on every fold."""
