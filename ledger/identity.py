from typing import Optional
from uuid import uuid4

from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .db import Credential, User, utcnow
from .errors import DuplicateEmailError, InvalidCredentialsError


pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def new_uid() -> str:
    return f"uid_{uuid4().hex}"


class IdentityStore:
    """Users and their credentials. Emails are compared case-insensitively."""

    @staticmethod
    def normalize_email(email: str) -> str:
        return email.strip().lower()

    def create_identity(
        self,
        session: Session,
        email: str,
        name: Optional[str],
        password_hash: str,
    ) -> str:
        email = self.normalize_email(email)
        taken = session.scalar(
            select(Credential.uid).where(Credential.email == email)
        ) or session.scalar(select(User.uid).where(User.email == email))
        if taken:
            raise DuplicateEmailError(f"Email {email} is already registered")

        uid = new_uid()
        now = utcnow()
        session.add(User(uid=uid, email=email, name=name, created_at=now))
        session.add(Credential(uid=uid, email=email, password_hash=password_hash, created_at=now))
        try:
            session.flush()
        except IntegrityError as e:
            # Lost a race with a concurrent signup for the same email.
            raise DuplicateEmailError(f"Email {email} is already registered") from e
        return uid

    def get(self, session: Session, uid: str) -> Optional[User]:
        return session.get(User, uid)

    def find_by_email(self, session: Session, email: str) -> Optional[User]:
        return session.scalar(
            select(User).where(User.email == self.normalize_email(email))
        )

    def verify_credential(self, session: Session, email: str, password: str) -> str:
        """Return the uid for a matching email/password pair."""
        credential = session.scalar(
            select(Credential).where(Credential.email == self.normalize_email(email))
        )
        if credential is None:
            pwd_context.dummy_verify()
            raise InvalidCredentialsError("Invalid email or password")
        if not pwd_context.verify(password, credential.password_hash):
            raise InvalidCredentialsError("Invalid email or password")
        return credential.uid

    def list_users(self, session: Session) -> list[User]:
        return list(session.scalars(select(User).order_by(User.created_at.desc())))
