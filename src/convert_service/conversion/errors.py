class ConversionError(Exception):
    """Base class for every failure raised by the conversion domain."""


class UnsupportedConversion(ConversionError):
    def __init__(self, conversion_type: str, message: str | None = None) -> None:
        self.conversion_type = conversion_type
        super().__init__(message or f"conversion type {conversion_type!r} is not supported")


class EmptyBatch(UnsupportedConversion):
    def __init__(self, conversion_type: str) -> None:
        super().__init__(conversion_type, "no files to convert")


class InvalidScale(ConversionError, ValueError):
    def __init__(self, scale: float, low: float, high: float) -> None:
        self.scale = scale
        super().__init__(f"scale {scale} outside allowed range {low}..{high}")


class DecodeError(ConversionError):
    """Source bytes could not be parsed as the declared media type."""


class EncodeError(ConversionError):
    """Target encoder rejected the decoded content or produced nothing."""


class ResourceInitError(ConversionError):
    """A drawing/rendering surface could not be acquired."""


class InvalidTransition(RuntimeError):
    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"illegal job transition {current} -> {target}")
