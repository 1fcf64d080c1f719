from contextlib import contextmanager, nullcontext
from decimal import Decimal, InvalidOperation
from typing import Any, Iterator, Optional, Union

import structlog
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .balances import BalanceStore
from .config import Settings, get_settings
from .db import get_engine, init_db, make_session_factory, session_scope, utcnow
from .errors import (
    AlreadyAllocatedError,
    BalanceExistsError,
    BalanceNotFoundError,
    InsufficientGasBalanceError,
    InsufficientHomeBalanceError,
    InvalidAmountError,
    InvalidCredentialsError,
    MissingCredentialsError,
    StorageError,
    UidRequiredError,
    UserNotFoundError,
)
from .gate import AdminGate
from .identity import IdentityStore, hash_password
from .journal import TransactionLog
from .locks import UidLocks
from .models import (
    Balance,
    BalanceField,
    EntryCategory,
    LedgerEntry,
    Profile,
    ReconciliationReport,
    UserSummary,
    from_cents,
    to_cents,
)


logger = structlog.get_logger(__name__)

MIN_PASSWORD_LENGTH = 6
HOME_CREDIT_LABEL = "wallet"
# largest value a signed 64-bit cents column holds
MAX_CENTS = 2**63 - 1


def parse_amount(value: Any, allow_zero: bool = False) -> int:
    """Validate a USD amount and return it in cents."""
    if value is None or isinstance(value, bool):
        raise InvalidAmountError("Amount is required")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidAmountError(f"Amount {value!r} is not a number") from e

    if not amount.is_finite():
        raise InvalidAmountError("Amount must be finite")
    if amount < 0 or (amount == 0 and not allow_zero):
        raise InvalidAmountError(f"Amount {amount} is out of range")
    try:
        cents = to_cents(amount)
    except ValueError as e:
        raise InvalidAmountError(str(e)) from e
    if cents > MAX_CENTS:
        raise InvalidAmountError(f"Amount {amount} is out of range")
    return cents


class LedgerService:
    """
    Keeps each user's home/gas balances and their ledger entries consistent.

    Every operation runs in one database transaction, so a balance change and
    its ledger entry are committed together or not at all. Withdrawals hold a
    per-uid lock across the sufficiency check and the debit unless
    ``serialize_withdrawals`` is disabled, in which case two concurrent
    withdrawals may both pass the check and overdraw the account.
    """

    def __init__(self, settings: Optional[Settings] = None, engine: Optional[Engine] = None):
        self.settings = settings or get_settings()
        self.engine = engine or get_engine(self.settings.database_url)
        init_db(self.engine)
        self._session_factory = make_session_factory(self.engine)

        self.identity = IdentityStore()
        self.balances = BalanceStore()
        self.journal = TransactionLog()
        self.locks = UidLocks()
        admin_key = self.settings.admin_key
        self.gate = AdminGate(admin_key.get_secret_value() if admin_key else None)
        self._default_home_cents = to_cents(self.settings.default_home_balance)

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        try:
            with session_scope(self._session_factory) as session:
                yield session
        except SQLAlchemyError as e:
            logger.error("storage_failure", error=str(e))
            raise StorageError("Storage operation failed") from e

    # Identity

    def signup(self, email: Optional[str], name: Optional[str], password: Optional[str]) -> Profile:
        email = (email or "").strip()
        if not email or not password or len(password) < MIN_PASSWORD_LENGTH:
            raise MissingCredentialsError(
                f"Email and a password of at least {MIN_PASSWORD_LENGTH} characters are required",
                code="email_and_password_required_min_6_chars",
            )

        digest = hash_password(password)
        with self._transaction() as session:
            uid = self.identity.create_identity(session, email, name or None, digest)
            self._allocate(session, uid)
            profile = self._profile(session, uid)

        logger.info("user_signed_up", uid=uid)
        return profile

    def login(self, email: Optional[str], password: Optional[str]) -> Profile:
        email = (email or "").strip()
        if not email or not password:
            raise MissingCredentialsError("Email and password are required")

        try:
            with self._transaction() as session:
                uid = self.identity.verify_credential(session, email, password)
                profile = self._profile(session, uid)
        except InvalidCredentialsError:
            logger.warning("login_failed")
            raise
        return profile

    def get_profile(self, uid: str) -> Profile:
        with self._transaction() as session:
            return self._profile(session, uid)

    def list_users(self, admin_key: Optional[str]) -> list[UserSummary]:
        self.gate.require(admin_key)
        with self._transaction() as session:
            users = []
            for user in self.identity.list_users(session):
                balance = self.balances.read(session, user.uid)
                users.append(UserSummary(
                    uid=user.uid,
                    email=user.email,
                    name=user.name,
                    home_balance=balance.home_balance,
                    gas_balance=balance.gas_balance,
                    created_at=user.created_at,
                ))
            return users

    # Ledger

    def allocate_on_signup(self, uid: str) -> Balance:
        with self._transaction() as session:
            if self.identity.get(session, uid) is None:
                raise UserNotFoundError(f"User {uid} not found")
            return self._allocate(session, uid)

    def admin_credit(
        self,
        uid: str,
        amount: Any,
        target: Union[BalanceField, str],
        note: Optional[str] = None,
        admin_key: Optional[str] = None,
    ) -> Profile:
        self.gate.require(admin_key)

        if not uid:
            raise InvalidAmountError("uid is required")
        cents = parse_amount(amount)
        try:
            target = BalanceField(target)
        except ValueError as e:
            raise InvalidAmountError(f"Unknown balance {target!r}") from e

        if target is BalanceField.GAS:
            category, label = EntryCategory.GAS_FEE, None
        else:
            category, label = EntryCategory.WALLET, (note or HOME_CREDIT_LABEL)

        with self._transaction() as session:
            if self.identity.get(session, uid) is None:
                raise UserNotFoundError(f"User {uid} not found")

            self.journal.append(session, uid, cents, category, note=label)
            try:
                self.balances.apply_delta(session, uid, target, cents)
            except BalanceNotFoundError as e:
                raise UserNotFoundError(f"User {uid} has no balance") from e
            profile = self._profile(session, uid)

        logger.info(
            "admin_credit_applied",
            uid=uid,
            target=target.value,
            amount=str(from_cents(cents)),
            category=category.value,
        )
        return profile

    def withdraw(self, uid: str, principal_amount: Any, gas_amount: Any) -> Profile:
        if not uid:
            raise InvalidAmountError("uid is required")
        principal_cents = parse_amount(principal_amount)
        gas_cents = parse_amount(gas_amount, allow_zero=True)
        principal, gas = from_cents(principal_cents), from_cents(gas_cents)

        lock = self.locks.hold(uid) if self.settings.serialize_withdrawals else nullcontext()
        with lock, self._transaction() as session:
            snapshot = self.balances.find(session, uid)
            if snapshot is None:
                raise UserNotFoundError(f"User {uid} not found")
            if snapshot.home_balance < principal:
                raise InsufficientHomeBalanceError(
                    f"Home balance {snapshot.home_balance} is below {principal}"
                )
            if snapshot.gas_balance < gas:
                raise InsufficientGasBalanceError(
                    f"Gas balance {snapshot.gas_balance} is below {gas}"
                )

            now = utcnow()
            self.balances.apply_delta(session, uid, BalanceField.HOME, -principal_cents)
            if gas_cents > 0:
                self.balances.apply_delta(session, uid, BalanceField.GAS, -gas_cents)

            self.journal.append(session, uid, -principal_cents, EntryCategory.WITHDRAW, created_at=now)
            if gas_cents > 0:
                self.journal.append(session, uid, -gas_cents, EntryCategory.GAS_FEE, created_at=now)
            profile = self._profile(session, uid)

        logger.info("withdrawal_applied", uid=uid, principal=str(principal), gas=str(gas))
        return profile

    def recent_entries(self, uid: str, limit: Optional[int] = None) -> list[LedgerEntry]:
        if not uid or not uid.strip():
            raise UidRequiredError("uid is required")
        cap = self.settings.recent_entries_limit
        limit = cap if limit is None else max(1, min(limit, cap))

        with self._transaction() as session:
            return list(self.journal.recent(session, uid, limit))

    def reconcile(self, uid: str, admin_key: Optional[str] = None) -> ReconciliationReport:
        """Compare stored balances with the sum of the user's ledger entries."""
        self.gate.require(admin_key)
        with self._transaction() as session:
            if self.identity.get(session, uid) is None:
                raise UserNotFoundError(f"User {uid} not found")
            balance = self.balances.read(session, uid)
            totals, count = self.journal.totals(session, uid)

        report = ReconciliationReport(
            uid=uid,
            home_balance=balance.home_balance,
            gas_balance=balance.gas_balance,
            home_ledger_total=from_cents(totals[BalanceField.HOME]),
            gas_ledger_total=from_cents(totals[BalanceField.GAS]),
            entry_count=count,
        )
        if not report.consistent:
            logger.warning(
                "balance_drift_detected",
                uid=uid,
                home_drift=str(report.home_drift),
                gas_drift=str(report.gas_drift),
            )
        return report

    def _allocate(self, session: Session, uid: str) -> Balance:
        try:
            balance = self.balances.create_default(session, uid, home_cents=self._default_home_cents)
        except BalanceExistsError as e:
            raise AlreadyAllocatedError(f"Balance for {uid} already allocated") from e
        self.journal.append(session, uid, self._default_home_cents, EntryCategory.DEFAULT, note="default")
        return balance

    def _profile(self, session: Session, uid: str) -> Profile:
        user = self.identity.get(session, uid)
        if user is None:
            raise UserNotFoundError(f"User {uid} not found")
        balance = self.balances.read(session, uid)
        return Profile(
            uid=user.uid,
            email=user.email,
            name=user.name,
            home_balance=balance.home_balance,
            gas_balance=balance.gas_balance,
        )
