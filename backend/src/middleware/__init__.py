"""Request logging and the global error envelope."""

from .error_handler import register_exception_handlers
from .logging import logging_middleware

__all__ = ["logging_middleware", "register_exception_handlers"]
