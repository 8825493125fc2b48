class ConfigurationError(RuntimeError):
    """Raised when a required credential or setting is missing."""


class AIProcessingError(RuntimeError):
    """Raised when the generative model call itself fails (auth, quota, transport)."""


class UnsupportedMediaTypeError(ValueError):
    """Raised for uploads whose MIME type the extractor or provider cannot accept."""


class RecordStoreError(RuntimeError):
    """Raised when the record store rejects a read or write."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
