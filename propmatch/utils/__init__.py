"""
propmatch utilities

Shared utilities:
- Logging setup
"""

from propmatch.utils.logging import configure_from_config, get_logger, setup_logging

__all__ = ["configure_from_config", "get_logger", "setup_logging"]
