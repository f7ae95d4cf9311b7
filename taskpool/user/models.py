# taskpool/user/models.py
import datetime as _dt
import sqlalchemy as _sql
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from passlib.context import CryptContext

import taskpool.core.db.session as _database

pwd_ctx = CryptContext(schemes=["bcrypt"], deprecated="auto")


class User(_database.Base):
    """Owner of projects. Same human as the Contributor with the same (username, provider)."""
    __tablename__ = "users"

    username = _sql.Column(_sql.String(100), primary_key=True)
    provider = _sql.Column(_sql.String(20), primary_key=True)
    email = _sql.Column(_sql.String(100), nullable=True)
    created_at = _sql.Column(_sql.DateTime, server_default=func.now(), nullable=False)

    credentials = relationship("ApiToken", back_populates="user", cascade="all, delete-orphan", order_by="ApiToken.name")

    def projects(self):
        from taskpool.core.storage import Storage
        return Storage.of(self).projects().owned_by(self.username, self.provider)

    def __eq__(self, other):
        return isinstance(other, User) and (self.username, self.provider) == (other.username, other.provider)

    def __hash__(self):
        return hash((self.username, self.provider))

    def __repr__(self):
        return f"User({self.username}@{self.provider})"


class Contributor(_database.Base):
    __tablename__ = "contributors"

    username = _sql.Column(_sql.String(100), primary_key=True)
    provider = _sql.Column(_sql.String(20), primary_key=True)
    billing_info = _sql.Column(_sql.Text, nullable=True)
    created_at = _sql.Column(_sql.DateTime, server_default=func.now(), nullable=False)

    def contracts(self):
        from taskpool.core.storage import Storage
        return Storage.of(self).contracts().of_contributor(self.username, self.provider)

    def __eq__(self, other):
        return isinstance(other, Contributor) and (self.username, self.provider) == (other.username, other.provider)

    def __hash__(self):
        return hash((self.username, self.provider))

    def __repr__(self):
        return f"Contributor({self.username}@{self.provider})"


class ApiToken(_database.Base):
    __tablename__ = "api_tokens"
    __table_args__ = (
        _sql.ForeignKeyConstraint(["username", "provider"], ["users.username", "users.provider"]),
    )

    name = _sql.Column(_sql.String(100), primary_key=True)
    username = _sql.Column(_sql.String(100), primary_key=True)
    provider = _sql.Column(_sql.String(20), primary_key=True)
    secret_hash = _sql.Column(_sql.String(255), nullable=False)
    expires_at = _sql.Column(_sql.DateTime, nullable=False)

    user = relationship("User", back_populates="credentials")

    def set_secret(self, secret: str) -> None:
        # bcrypt only looks at the first 72 bytes
        self.secret_hash = pwd_ctx.hash(secret[:72])

    def verify(self, secret: str, now: _dt.datetime) -> bool:
        if now >= self.expires_at:
            return False
        return pwd_ctx.verify(secret[:72], self.secret_hash)
