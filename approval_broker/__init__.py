"""Approval broker package initialisation."""

from .background import run_async  # noqa: F401
from .config import AppSettings, get_settings  # noqa: F401
from .db import Base, Store  # noqa: F401
from .logging_config import configure_logging  # noqa: F401
from .schemas import FunctionCall, HumanContact  # noqa: F401

__all__ = [
    "AppSettings",
    "get_settings",
    "run_async",
    "Base",
    "Store",
    "FunctionCall",
    "HumanContact",
    "configure_logging",
]
