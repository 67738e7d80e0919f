"""Error taxonomy for the routing pipeline."""


class RouterError(Exception):
    """Base class for routing failures."""

    error_code = "ROUTER_ERROR"


class ConfigurationError(RouterError):
    """Raised when a required secret or setting is missing."""

    error_code = "CONFIG_ERROR"


class RecordStoreError(RouterError):
    """Raised for transport or query failures against the record store."""

    error_code = "STORE_ERROR"


class RecordLookupError(RecordStoreError):
    """Raised when a lookup could not be completed (distinct from no match)."""

    error_code = "LOOKUP_ERROR"


class LogWriteError(RecordStoreError):
    """Raised when an audit log entry could not be written."""

    error_code = "LOG_WRITE_ERROR"


class SendError(RouterError):
    """Raised when the messaging gateway rejects or fails a send."""

    error_code = "SEND_ERROR"
