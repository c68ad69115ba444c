from __future__ import annotations


class ApplytrackError(Exception):
    """Base class for errors raised by applytrack itself."""


class ConfigurationError(ApplytrackError):
    def __init__(self, missing: list[str]):
        self.missing = list(missing)
        super().__init__("Missing required configuration: " + ", ".join(self.missing))


class BatchFormatError(ApplytrackError):
    """The whole batch is unusable; raised before any row is processed."""


class RowValidationError(ApplytrackError):
    def __init__(self, fields: dict[str, str]):
        self.fields = dict(fields)
        detail = "; ".join(f"{name}: {message}" for name, message in self.fields.items())
        super().__init__(f"invalid fields ({detail})")


class UserResolutionError(ApplytrackError):
    pass


class GatewayError(ApplytrackError):
    pass


class FileStoreError(ApplytrackError):
    pass


class LatexCompileError(ApplytrackError):
    def __init__(self, message: str, log: str = ""):
        self.log = log
        super().__init__(message)
