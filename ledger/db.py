"""
Database schema and session management.

Four relations: users, user_auth, balances, ledger_entries. Money columns
hold integer cents. Every child row references ``users.uid`` and is removed
with its user.
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Integer,
    String,
    create_engine,
    event,
    text,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    Session,
    mapped_column,
    relationship,
    sessionmaker,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    uid: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    credential: Mapped["Credential"] = relationship(
        back_populates="user", cascade="all, delete-orphan", uselist=False
    )
    balance: Mapped["BalanceRow"] = relationship(
        back_populates="user", cascade="all, delete-orphan", uselist=False
    )
    entries: Mapped[list["LedgerEntryRow"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<User {self.uid}: {self.email}>"


class Credential(Base):
    __tablename__ = "user_auth"

    uid: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.uid", ondelete="CASCADE"), primary_key=True
    )
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    user: Mapped["User"] = relationship(back_populates="credential")


class BalanceRow(Base):
    __tablename__ = "balances"

    uid: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.uid", ondelete="CASCADE"), primary_key=True
    )
    home_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    gas_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    user: Mapped["User"] = relationship(back_populates="balance")

    def __repr__(self) -> str:
        return f"<Balance {self.uid}: home={self.home_cents} gas={self.gas_cents}>"


class LedgerEntryRow(Base):
    __tablename__ = "ledger_entries"

    # Integer (not BigInteger) so SQLite aliases it to ROWID and autoincrements.
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uid: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.uid", ondelete="CASCADE"), nullable=False, index=True
    )
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    user: Mapped["User"] = relationship(back_populates="entries")

    def __repr__(self) -> str:
        return f"<LedgerEntry {self.id}: {self.uid} {self.amount_cents} {self.category}>"


def get_engine(database_url: str) -> Engine:
    """
    Create SQLAlchemy engine.

    SQLite files get WAL mode and enforced foreign keys.
    """
    url = make_url(database_url)
    if not url.drivername.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)

    if url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(url, connect_args={"check_same_thread": False})

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    if url.database and url.database != ":memory:":
        with engine.connect() as conn:
            conn.execute(text("PRAGMA journal_mode=WAL"))
            conn.commit()

    return engine


def init_db(engine: Engine) -> None:
    """Create all tables if they don't exist."""
    Base.metadata.create_all(engine)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Provide transactional scope around a series of operations.

    Commits when the block exits normally, rolls back and re-raises otherwise.
    """
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
