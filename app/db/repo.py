from __future__ import annotations

import datetime
from typing import Optional

from sqlalchemy import and_, select

from app.db.models import STATE_PARTITION_KEY, STATE_ROW_KEY, FamilyState


def get_state_row(
    session,
    partition_key: str = STATE_PARTITION_KEY,
    row_key: str = STATE_ROW_KEY,
) -> Optional[FamilyState]:
    return session.scalar(
        select(FamilyState).where(
            and_(FamilyState.partition_key == partition_key, FamilyState.row_key == row_key)
        )
    )


def upsert_state_row(
    session,
    data: str,
    partition_key: str = STATE_PARTITION_KEY,
    row_key: str = STATE_ROW_KEY,
) -> FamilyState:
    now = datetime.datetime.now(datetime.timezone.utc)
    row = get_state_row(session, partition_key, row_key)
    if row:
        row.data = data
        row.last_updated = now
        return row

    row = FamilyState(partition_key=partition_key, row_key=row_key, data=data, last_updated=now)
    session.add(row)
    session.flush()
    return row

