"""Async utility functions for the custom tables API.

Provides helpers for running blocking PyDAL operations from async Flask
views using a thread pool.
"""

# flake8: noqa: E501


import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, ParamSpec, TypeVar

from flask import copy_current_request_context, current_app, has_app_context, has_request_context

logger = logging.getLogger(__name__)

# Thread pool for blocking operations (PyDAL database calls)
_executor = ThreadPoolExecutor(max_workers=20, thread_name_prefix="pydal_")

P = ParamSpec("P")
T = TypeVar("T")


async def run_in_threadpool(
    func: Callable[P, T], *args: P.args, **kwargs: P.kwargs
) -> T:
    """
    Run a blocking function in the thread pool with Flask context support.

    PyDAL is synchronous; schema operations in particular can hold a
    connection for many statements, so they run off the event loop. On
    any error the current transaction is rolled back before re-raising so
    the pooled connection is not left in an aborted state.

    Example:
        >>> service = current_app.custom_tables
        >>> tables = await run_in_threadpool(service.get_tables)
    """
    loop = asyncio.get_running_loop()

    def safe_wrapper():
        try:
            return func(*args, **kwargs)
        except Exception:
            if has_app_context() and getattr(current_app, "db", None) is not None:
                try:
                    current_app.db.rollback()
                except Exception as rollback_error:
                    logger.error(f"Failed to rollback transaction: {rollback_error}")
            raise

    # If we're in a Flask request context, copy it to the thread
    if has_request_context():
        wrapped_func = copy_current_request_context(safe_wrapper)
    else:
        wrapped_func = safe_wrapper

    return await loop.run_in_executor(_executor, wrapped_func)


def shutdown_thread_pool():
    """
    Gracefully shutdown the thread pool.

    Call this during application shutdown to clean up threads.
    """
    _executor.shutdown(wait=True)
