from zendb.utils.datetime import from_epoch, to_epoch, to_utc
from zendb.utils.logging import log_duration, sanitize_for_log

__all__ = ["from_epoch", "log_duration", "sanitize_for_log", "to_epoch", "to_utc"]
