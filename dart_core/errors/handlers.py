# =============================================================================
# dart_core/errors/handlers.py
# Error Handling Utilities for the DART sync core
# =============================================================================

from __future__ import annotations
import functools
import traceback
from typing import Optional, Callable, TypeVar, Any
import streamlit as st

from dart_core.logging import get_logger
from .exceptions import DartError

logger = get_logger(__name__)

T = TypeVar("T")


def handle_error(
    error: Exception,
    show_user_message: bool = False,
    log_error: bool = True,
    user_message: Optional[str] = None,
) -> None:
    """
    Centralized error handling function.

    Sync is a background concern, so nothing is shown to the user unless the
    caller is a screen that explicitly asks for it.

    Args:
        error: The exception to handle
        show_user_message: Whether to display error to user via st.error
        log_error: Whether to log the error
        user_message: Custom message to show user (uses error message if None)
    """
    if isinstance(error, DartError):
        message = user_message or error.message
        code = error.code
        details = error.details
        recoverable = error.recoverable
    else:
        message = user_message or str(error)
        code = "UNKNOWN"
        details = {"traceback": traceback.format_exc()}
        recoverable = True

    if log_error:
        logger.error(
            f"[{code}] {message}",
            extra={"details": details},
            exc_info=error,
        )

    if show_user_message:
        if recoverable:
            st.error(f"Error: {message}")
        else:
            st.error(f"Critical Error: {message}. Please contact support.")


def safe_execute(
    func: Callable[..., T],
    *args,
    default: Optional[T] = None,
    error_message: Optional[str] = None,
    show_user_message: bool = False,
    reraise: bool = False,
    **kwargs,
) -> Optional[T]:
    """
    Execute a function with automatic error handling.

    Usage:
        report = safe_execute(
            engine.sync_now,
            default=None,
            error_message="Manual sync failed",
            show_user_message=True,
        )
    """
    try:
        return func(*args, **kwargs)
    except Exception as e:
        handle_error(e, show_user_message=show_user_message, user_message=error_message)
        if reraise:
            raise
        return default


def error_boundary(
    default_return: Any = None,
    error_message: Optional[str] = None,
    log: bool = True,
):
    """
    Decorator that absorbs and logs any exception raised by the wrapped function.

    Usage:
        @error_boundary(default_return=False)
        def _on_connection_change(self, state) -> bool:
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., Optional[T]]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Optional[T]:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if log:
                    logger.error(
                        f"{error_message or 'Error'} in {func.__name__}: {e}",
                        exc_info=True,
                    )
                return default_return

        return wrapper

    return decorator
