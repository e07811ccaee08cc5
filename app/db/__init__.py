from app.db.models import STATE_PARTITION_KEY, STATE_ROW_KEY, Base, FamilyState
from app.db.session import SessionLocal, dispose_engine, ensure_schema, get_session, init_engine

__all__ = [
    "STATE_PARTITION_KEY",
    "STATE_ROW_KEY",
    "Base",
    "FamilyState",
    "SessionLocal",
    "dispose_engine",
    "ensure_schema",
    "get_session",
    "init_engine",
]
