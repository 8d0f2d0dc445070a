"""
Exceptions raised while loading and expanding CI configuration.
"""


class ConfigError(Exception):
    """Base class; the message is shown to users as-is."""


class ConfigFormatError(ConfigError):
    def __init__(self, message: str = "Invalid configuration format"):
        super().__init__(message)


class ExtendsError(ConfigError):
    pass


class IncludeError(ConfigError):
    pass


class AmbiguousSpecificationError(IncludeError):
    pass


class DuplicateIncludesError(IncludeError):
    pass


class TooManyIncludesError(IncludeError):
    pass


class InvalidIncludeError(IncludeError):
    pass
