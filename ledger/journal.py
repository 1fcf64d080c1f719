from datetime import datetime
from typing import Iterator, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .db import LedgerEntryRow, utcnow
from .models import BalanceField, EntryCategory, LedgerEntry, from_cents


def _to_model(row: LedgerEntryRow) -> LedgerEntry:
    return LedgerEntry(
        id=row.id,
        uid=row.uid,
        amount=from_cents(row.amount_cents),
        category=EntryCategory(row.category),
        note=row.note,
        created_at=row.created_at,
    )


class RecentEntries:
    """Newest-first window over a user's entries; re-queries on each iteration."""

    def __init__(self, session: Session, uid: str, limit: int):
        self._session = session
        self.uid = uid
        self.limit = limit

    def __iter__(self) -> Iterator[LedgerEntry]:
        rows = self._session.scalars(
            select(LedgerEntryRow)
            .where(LedgerEntryRow.uid == self.uid)
            .order_by(LedgerEntryRow.id.desc())
            .limit(self.limit)
        )
        for row in rows:
            yield _to_model(row)


class TransactionLog:
    """Append-only history of balance changes. Entries are never updated or removed."""

    def append(
        self,
        session: Session,
        uid: str,
        amount_cents: int,
        category: EntryCategory,
        note: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> int:
        row = LedgerEntryRow(
            uid=uid,
            amount_cents=amount_cents,
            category=category.value,
            note=note,
            created_at=created_at or utcnow(),
        )
        session.add(row)
        session.flush()
        return row.id

    def recent(self, session: Session, uid: str, limit: int = 20) -> RecentEntries:
        return RecentEntries(session, uid, limit)

    def totals(self, session: Session, uid: str) -> tuple[dict[BalanceField, int], int]:
        """Sum of entry amounts per balance field, plus the entry count."""
        rows = session.execute(
            select(
                LedgerEntryRow.category,
                func.coalesce(func.sum(LedgerEntryRow.amount_cents), 0),
                func.count(LedgerEntryRow.id),
            )
            .where(LedgerEntryRow.uid == uid)
            .group_by(LedgerEntryRow.category)
        ).all()

        totals = {BalanceField.HOME: 0, BalanceField.GAS: 0}
        count = 0
        for category, total, n in rows:
            totals[EntryCategory(category).field] += int(total)
            count += n
        return totals, count
