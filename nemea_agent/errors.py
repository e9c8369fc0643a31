from __future__ import annotations


class NemeaError(Exception):
    """Base class for agent errors."""


class InvalidConfigError(NemeaError):
    """A monitor descriptor asks for something the executors cannot do."""


class MalformedResponseError(NemeaError):
    """The remote endpoint answered, but not with the expected shape."""
