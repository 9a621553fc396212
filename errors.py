# ─────────────────────────────────────────────────────────────────
# errors.py — Exception Types
#
# Only conditions the caller must react to live here.
# A host being down is NOT an error — the prober reports it as
# a normal ProbeResult with online=False.
# ─────────────────────────────────────────────────────────────────


class ServerMonError(Exception):
    """Base class for every error raised by the monitor."""


class ConfigError(ServerMonError):
    """The server list or settings could not be loaded."""


class DuplicateHostError(ConfigError):
    """The same name appears more than once in the server list."""

    def __init__(self, name: str):
        super().__init__(f"Duplicate name in configuration: '{name}'")
        self.name = name


class HostNotFoundError(ServerMonError):
    """A targeted probe named a host that is not registered."""

    def __init__(self, name: str):
        super().__init__(f"Server '{name}' not found")
        self.name = name
