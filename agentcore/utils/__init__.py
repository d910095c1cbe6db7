from .logging import configure_logging, filter_sensitive_data, get_logger
from .retry import background_retrying

__all__ = ["configure_logging", "filter_sensitive_data", "get_logger", "background_retrying"]
