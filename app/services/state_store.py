from __future__ import annotations

import copy
import json
from typing import Any, Callable, ContextManager, Dict, Mapping, Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from app.db import ensure_schema, get_session
from app.db import repo
from app.services.shared_state import default_state, merge_update, normalize_state


class StoreUnavailableError(RuntimeError):
    pass


class StateStore:
    """Single-row store for the shared family state blob.

    Every ``save`` overwrites the whole row, so concurrent writers resolve
    as last write wins.
    """

    def __init__(self, session_factory: Callable[[], ContextManager] = get_session) -> None:
        self._session_factory = session_factory
        self._last_known: Optional[Dict[str, Any]] = None

    @property
    def last_known(self) -> Dict[str, Any]:
        if self._last_known is None:
            return default_state()
        return copy.deepcopy(self._last_known)

    def ensure_table(self) -> None:
        try:
            ensure_schema()
        except SQLAlchemyError as exc:
            logger.bind(error=str(exc)).error("Failed to initialize state table")
            raise StoreUnavailableError("Storage configuration error.") from exc

    def _read(self, session) -> Dict[str, Any]:
        row = repo.get_state_row(session)
        if row is None or not row.data:
            return default_state()
        try:
            return normalize_state(json.loads(row.data))
        except json.JSONDecodeError as exc:
            raise StoreUnavailableError("Stored state is not valid JSON.") from exc

    def load(self) -> Dict[str, Any]:
        try:
            with self._session_factory() as session:
                state = self._read(session)
        except SQLAlchemyError as exc:
            logger.bind(error=str(exc)).warning("Failed to load shared state")
            raise StoreUnavailableError("Failed to load shared state.") from exc

        self._last_known = state
        return copy.deepcopy(state)

    def save(self, partial: Mapping[str, Any]) -> Dict[str, Any]:
        try:
            with self._session_factory() as session:
                merged = merge_update(self._read(session), partial)
                repo.upsert_state_row(session, json.dumps(merged))
        except SQLAlchemyError as exc:
            logger.bind(error=str(exc), sections=sorted(partial)).warning("Failed to save shared state")
            raise StoreUnavailableError("Failed to save shared state.") from exc

        self._last_known = merged
        logger.bind(sections=sorted(partial)).debug("Shared state saved")
        return copy.deepcopy(merged)
