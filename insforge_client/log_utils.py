"""
Logging helpers. Tokens and states only ever reach the log as a short prefix.
"""
import logging

from insforge_client.config import LOG_LEVEL

PREFIX_LEN = 8


def token_prefix(value: str | None) -> str:
    """First few characters of a credential plus '...'; '-' when absent."""
    if not value:
        return "-"
    if len(value) <= PREFIX_LEN:
        return "***"
    return value[:PREFIX_LEN] + "..."


def configure_logging(level: str = LOG_LEVEL) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)-8s %(name)s  %(message)s",
    )
