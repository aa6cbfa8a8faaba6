class PolyDBError(Exception):
    """Base exception for polydb."""


class ConfigurationError(PolyDBError):
    """Unresolvable backend selection or missing connection parameters (startup only)."""


class UnknownOperation(PolyDBError):
    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class InvalidArguments(PolyDBError):
    pass


class InvalidStatementClass(PolyDBError):
    pass


READ_ONLY_MESSAGE = "Server is running in read-only mode. Write operations are disabled."


class PolicyViolation(PolyDBError):
    def __init__(self, message: str = READ_ONLY_MESSAGE):
        super().__init__(message)


class UnsupportedOperation(PolyDBError):
    pass


class BackendError(PolyDBError):
    """Native driver failure. The driver's message is preserved verbatim."""
