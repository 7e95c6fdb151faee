"""
logging.py — Application-Wide Logging Configuration

Purpose:
- Configure a standardized logging format for the engine, the API and scripts.
- Uniform formatting: timestamp | level | module | message

The calculation modules never configure logging themselves; they only ask
for a named logger via get_logger(__name__).
"""

import logging

# -----------------------------------------------------------------------------
# Log Format
# -----------------------------------------------------------------------------

LOG_FORMAT = (
    "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
)

# -----------------------------------------------------------------------------
# Root Logger Initialization
# -----------------------------------------------------------------------------

def configure_logging(level: str = "INFO") -> None:
    """
    Configure root logging settings.

    Parameters:
        level (str): "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"

    Should be called ONCE, typically in `main.py` at app startup or at the
    top of a script's main().
    """

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT
    )

    logging.getLogger(__name__).info("Logging initialized with level %s", level)

# -----------------------------------------------------------------------------
# Logger Access Helper
# -----------------------------------------------------------------------------

def get_logger(name: str) -> logging.Logger:
    """
    Return a logger instance to be used in any module.

    In any module:
        from dcf_engine.core.logging import get_logger
        logger = get_logger(__name__)
    """
    return logging.getLogger(name)
