"""Exceptions raised while building port tables and counting fanout."""


class FanoutError(Exception):
    """Base class for all fatal fanout analysis errors."""
    pass


class SourceUnreadableError(FanoutError, OSError):
    """Raised when an include or netlist source cannot be opened or read."""
    pass


class MalformedDeclarationError(FanoutError, ValueError):
    """Raised when an include source opens a module block that never ends."""

    def __init__(self, source: str, module: str, line_number: int, reason: str = "no matching endmodule"):
        self.source = source
        self.module = module
        self.line_number = line_number
        super().__init__(
            f"{source}:{line_number}: module {module} has {reason}"
        )


class UndefinedPinError(FanoutError, LookupError):
    """Raised when an instance binds a pin that no include source declares."""

    def __init__(self, module: str, pin: str, instance: str = ""):
        self.module = module
        self.pin = pin
        self.instance = instance
        where = f" (instance {instance})" if instance else ""
        super().__init__(f"pin {pin} of module {module} is undefined{where}")


class MalformedStatementError(FanoutError, ValueError):
    """
    Raised for an instantiation whose port list cannot be parsed, and in
    strict mode for statements that cannot be classified.
    """

    def __init__(self, statement: str, index: int = -1, reason: str = ""):
        self.statement = statement
        self.index = index
        self.reason = reason
        preview = statement if len(statement) <= 80 else statement[:77] + "..."
        if reason:
            super().__init__(f"Malformed statement #{index} ({reason}): {preview}")
        else:
            super().__init__(f"Unrecognized statement #{index}: {preview}")
