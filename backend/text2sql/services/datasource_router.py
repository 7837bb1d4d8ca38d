"""
Execution context router.

Maps a request-scoped backend selector (datasource name or alias)
to a concrete ``QueryExecutor``.  Resolution is total and
case-insensitive: unknown or absent selectors fall back to the
configured default.

The active selector lives in a ``ContextVar``, so every request
(thread or task) sees only its own value.  Overrides are scoped:
``use_datasource`` restores exactly the enclosing value on exit,
including when the body raises.

Example::

    with router.use_datasource("booking"):
        rows = router.current().execute_query("SELECT 1")
"""

import itertools
import logging
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Callable, Dict, Iterator, List, Optional, TypeVar

from text2sql.services.db_connector import QueryExecutor

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Selectors that rotate across the read pool.
READ_SELECTORS = ("read", "replica", "any")

_active_datasource: ContextVar[Optional[str]] = ContextVar(
    "text2sql_active_datasource", default=None,
)


def get_active_datasource() -> Optional[str]:
    """Return the selector active in the current context, if any."""
    return _active_datasource.get()


class DataSourceRouter:
    """
    Resolve backend selectors to execution handles.

    Attributes:
        default (str): Canonical name of the fallback datasource.
    """

    def __init__(
        self,
        handles: Dict[str, QueryExecutor],
        default: str,
        aliases: Optional[Dict[str, str]] = None,
        read_pool: Optional[List[str]] = None,
    ):
        if not handles:
            raise ValueError("at least one datasource is required")
        self._handles = {
            name.lower(): handle for name, handle in handles.items()
        }
        self.default = default.lower()
        if self.default not in self._handles:
            raise ValueError(f"unknown default datasource: {default!r}")

        self._aliases: Dict[str, str] = {}
        for alias, target in (aliases or {}).items():
            if target.lower() not in self._handles:
                raise ValueError(
                    f"alias {alias!r} points to unknown datasource "
                    f"{target!r}"
                )
            self._aliases[alias.lower()] = target.lower()

        pool = [
            name.lower() for name in (read_pool or [])
            if name.lower() in self._handles
        ] or [self.default]
        self._read_pool = pool
        self._read_cycle = itertools.cycle(pool)
        self._read_lock = threading.Lock()

    # ----- resolution -------------------------------------------------

    @property
    def names(self) -> List[str]:
        return list(self._handles)

    @property
    def aliases(self) -> Dict[str, str]:
        return dict(self._aliases)

    def canonical_name(self, selector: Optional[str]) -> str:
        """
        Normalise a selector to a canonical datasource name.

        Parameters:
            selector (str | None): Name, alias, or nothing.

        Returns:
            str: A name present in the handle map.
        """
        if selector is None or not selector.strip():
            return self.default

        normalized = selector.strip().lower()
        if normalized in self._handles:
            return normalized
        if normalized in self._aliases:
            return self._aliases[normalized]
        if normalized in READ_SELECTORS:
            with self._read_lock:
                return next(self._read_cycle)

        logger.warning(
            "[router] unknown datasource %r, using %s",
            selector,
            self.default,
        )
        return self.default

    def resolve(self, selector: Optional[str]) -> QueryExecutor:
        """
        Resolve a selector to its execution handle.

        Parameters:
            selector (str | None): Name, alias, or nothing.

        Returns:
            QueryExecutor: Never None.
        """
        return self._handles[self.canonical_name(selector)]

    def current(self) -> QueryExecutor:
        """Resolve the selector active in the current context."""
        return self.resolve(_active_datasource.get())

    # ----- scoped overrides -------------------------------------------

    @contextmanager
    def use_datasource(self, selector: Optional[str]) -> Iterator[QueryExecutor]:
        """
        Activate *selector* for the duration of a ``with`` block.

        The previous value is restored on every exit path, so
        nested overrides unwind one level at a time.

        Parameters:
            selector (str | None): Name or alias to activate.

        Yields:
            QueryExecutor: The handle the selector resolves to.
        """
        name = self.canonical_name(selector)
        logger.info("[router] using datasource %s", name)
        token = _active_datasource.set(name)
        try:
            yield self._handles[name]
        finally:
            _active_datasource.reset(token)

    def with_selector(self, selector: Optional[str], body: Callable[[], T]) -> T:
        """
        Run *body* with *selector* active, restoring the prior one.

        Parameters:
            selector (str | None): Name or alias to activate.
            body (callable): Zero-argument callable.

        Returns:
            Whatever *body* returns.
        """
        with self.use_datasource(selector):
            return body()

    # ----- maintenance ------------------------------------------------

    def test_all_connections(self) -> Dict[str, Dict[str, object]]:
        """
        Probe every datasource.

        Returns:
            dict: datasource name -> ``test_connection()`` result.
        """
        results = {}
        for name, handle in self._handles.items():
            results[name] = handle.test_connection()
            if results[name]["success"]:
                logger.info("[router] datasource %s is reachable", name)
        return results

    def dispose(self) -> None:
        for handle in self._handles.values():
            handle.dispose()
