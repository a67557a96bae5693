"""
assessment_engine/shutdown.py

Shared shutdown flag for graceful termination of background jobs.
Both main.py and the background task runner import from here to avoid circular imports.
"""

import asyncio

_shutdown_event = asyncio.Event()


def set_shutdown():
    """Signal that the app is shutting down."""
    _shutdown_event.set()


def is_shutting_down() -> bool:
    """Check if the app is shutting down. Used by background jobs."""
    return _shutdown_event.is_set()


def reset_shutdown():
    """Clear the flag. Used by tests that start and stop the app repeatedly."""
    _shutdown_event.clear()
