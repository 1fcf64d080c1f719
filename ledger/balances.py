from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .db import BalanceRow, utcnow
from .errors import BalanceExistsError, BalanceNotFoundError
from .models import Balance, BalanceField, from_cents


_COLUMNS = {
    BalanceField.HOME: BalanceRow.home_cents,
    BalanceField.GAS: BalanceRow.gas_cents,
}


def _to_model(uid: str, home_cents: int, gas_cents: int, updated_at: Optional[datetime]) -> Balance:
    return Balance(
        uid=uid,
        home_balance=from_cents(home_cents or 0),
        gas_balance=from_cents(gas_cents or 0),
        updated_at=updated_at,
    )


class BalanceStore:
    """One two-field balance row per user. Amounts are integer cents."""

    def create_default(self, session: Session, uid: str, home_cents: int = 0) -> Balance:
        if session.get(BalanceRow, uid) is not None:
            raise BalanceExistsError(f"Balance for {uid} already exists")

        row = BalanceRow(uid=uid, home_cents=home_cents, gas_cents=0, updated_at=utcnow())
        session.add(row)
        try:
            session.flush()
        except IntegrityError as e:
            raise BalanceExistsError(f"Balance for {uid} already exists") from e
        return _to_model(uid, row.home_cents, row.gas_cents, row.updated_at)

    def apply_delta(self, session: Session, uid: str, field: BalanceField, delta_cents: int) -> Balance:
        """Add a signed delta to one field as a single UPDATE statement."""
        column = _COLUMNS[field]
        result = session.execute(
            update(BalanceRow)
            .where(BalanceRow.uid == uid)
            .values({column: column + delta_cents, BalanceRow.updated_at: utcnow()})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise BalanceNotFoundError(f"No balance for {uid}")
        return self.read(session, uid)

    def _fetch(self, session: Session, uid: str) -> Optional[Balance]:
        row = session.execute(
            select(BalanceRow.home_cents, BalanceRow.gas_cents, BalanceRow.updated_at)
            .where(BalanceRow.uid == uid)
        ).first()
        if row is None:
            return None
        return _to_model(uid, *row)

    def find(self, session: Session, uid: str) -> Optional[Balance]:
        """Snapshot of the balance row, or None when the user has none."""
        return self._fetch(session, uid)

    def read(self, session: Session, uid: str) -> Balance:
        """Current balance; a missing row reads as zero."""
        return self._fetch(session, uid) or _to_model(uid, 0, 0, None)
