"""
Generation store for derived tables.

Derived tables (history events, yearly plans) are never patched: each run
swaps the whole scope for a new generation inside one transaction, so readers
see either the previous complete set or the new one.

A regeneration holds the lock of its scope from the first read of its inputs
to the commit of the swap. Rule edits take the planning locks before they
commit, so a plan built from the old rules can never land after the reset.
"""

from sqlalchemy import delete
from sqlalchemy.orm import Session
from contextlib import contextmanager
from typing import Callable, Dict, Iterable, Iterator, List, Optional
import logging
import threading

from gmao_planning.models import HistoryEvent, PlannedIntervention

logger = logging.getLogger(__name__)

HISTORY_SCOPE = "history"
PLANNING_PREFIX = "planning:"

# A plan whose inputs changed while it was built is rebuilt, up to this many times
MAX_BUILD_ATTEMPTS = 3

_scope_locks: Dict[str, threading.RLock] = {}
_registry_lock = threading.RLock()

# Bumped by every plan reset
_plans_epoch = 0
_epoch_lock = threading.Lock()


class StaleGenerationError(RuntimeError):
    """The inputs of a generation kept changing while it was built"""


def planning_scope(year: int) -> str:
    return f"{PLANNING_PREFIX}{year}"


def _lock_for(scope: str) -> threading.RLock:
    with _registry_lock:
        lock = _scope_locks.get(scope)
        if lock is None:
            lock = _scope_locks[scope] = threading.RLock()
        return lock


@contextmanager
def scope_lock(scope: str) -> Iterator[None]:
    """Serialize regenerations of one scope; other scopes run freely"""
    lock = _lock_for(scope)
    with lock:
        yield


@contextmanager
def planning_lock(year: Optional[int] = None) -> Iterator[None]:
    """
    Lock the plan of one year, or every plan when year is None.

    The all-years form keeps the registry locked until release, so a
    generation of a year never seen before waits for it too.
    """
    if year is not None:
        with scope_lock(planning_scope(year)):
            yield
        return

    with _registry_lock:
        locks: List[threading.RLock] = [
            _scope_locks[scope] for scope in sorted(_scope_locks)
            if scope.startswith(PLANNING_PREFIX)
        ]
        for lock in locks:
            lock.acquire()
        try:
            yield
        finally:
            for lock in reversed(locks):
                lock.release()


def plans_epoch() -> int:
    return _plans_epoch


def _bump_plans_epoch() -> None:
    global _plans_epoch
    with _epoch_lock:
        _plans_epoch += 1


def _delete_statement(scope: str):
    if scope == HISTORY_SCOPE:
        return delete(HistoryEvent)
    if scope.startswith(PLANNING_PREFIX):
        year = int(scope.split(":", 1)[1])
        return delete(PlannedIntervention).where(PlannedIntervention.year == year)
    raise ValueError(f"Unknown store scope: {scope}")


def invalidate_plans(db: Session) -> None:
    """
    Delete every plan inside the caller's transaction.

    The caller must hold planning_lock() and commit.
    """
    db.execute(delete(PlannedIntervention))
    _bump_plans_epoch()


class GenerationStore:
    """Full-replace access to the derived tables"""

    def __init__(self, db: Session):
        self.db = db

    def regenerate(self, scope: str, build: Callable[[], Iterable]) -> int:
        """
        Build a new generation of a scope and swap it in, under the scope lock.

        build reads its inputs and returns the new ORM rows. For a planning
        scope, a plan reset committed while build ran makes its rows stale:
        the session is expired and build runs again.

        Args:
            scope: HISTORY_SCOPE or planning_scope(year)
            build: Callable returning the new ORM instances for the scope

        Returns:
            Number of rows written

        Raises:
            StaleGenerationError: if the plan inputs changed on every attempt
            Any store error, after rolling back to the previous generation
        """
        statement = _delete_statement(scope)
        watch_epoch = scope.startswith(PLANNING_PREFIX)

        with scope_lock(scope):
            for attempt in range(1, MAX_BUILD_ATTEMPTS + 1):
                epoch = plans_epoch()
                rows = list(build())
                if not watch_epoch or plans_epoch() == epoch:
                    return self._swap(scope, statement, rows)

                logger.warning(
                    f"Plans were reset while building scope '{scope}', "
                    f"rebuilding (attempt {attempt}/{MAX_BUILD_ATTEMPTS})"
                )
                self.db.expire_all()

        raise StaleGenerationError(
            f"Scope '{scope}' inputs changed during {MAX_BUILD_ATTEMPTS} consecutive builds"
        )

    def replace_all(self, scope: str, rows: Iterable) -> int:
        """
        Replace every row of a scope with new ORM rows in one transaction.

        Args:
            scope: HISTORY_SCOPE or planning_scope(year)
            rows: New ORM instances for the scope

        Returns:
            Number of rows written

        Raises:
            Any store error, after rolling back to the previous generation
        """
        rows = list(rows)
        with scope_lock(scope):
            return self._swap(scope, _delete_statement(scope), rows)

    def _swap(self, scope: str, statement, rows: List) -> int:
        try:
            self.db.execute(statement)
            self.db.add_all(rows)
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error(f"Generation swap failed for scope '{scope}', rolled back", exc_info=True)
            raise

        logger.info(f"Scope '{scope}' replaced with {len(rows)} rows")
        return len(rows)

    def clear_plans(self, year: Optional[int] = None) -> int:
        """
        Delete the plan of one year, or every plan when year is None.

        Pending changes of the session (a rule edit) are committed with the
        deletion, under the planning lock.
        """
        statement = delete(PlannedIntervention)
        scope = f"{PLANNING_PREFIX}*"
        if year is not None:
            statement = statement.where(PlannedIntervention.year == year)
            scope = planning_scope(year)

        with planning_lock(year):
            try:
                result = self.db.execute(statement)
                _bump_plans_epoch()
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        logger.info(f"Cleared {result.rowcount} planned interventions ({scope})")
        return result.rowcount
