from .logger import setup_logging, get_log_level_from_env

__all__ = ["setup_logging", "get_log_level_from_env"]
