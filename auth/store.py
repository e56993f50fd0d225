"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper (same as content/store.py).
UserStore is the repository; the _row_to_* functions are the mappers.
Route and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/, content/, or redirects/.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Engine

from auth.models import ApiKey, Client, User

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'inkpost_auth.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("hashed_password", Text),
    Column("role", String(30), nullable=False, server_default="author"),
    Column("created_at", String(32), nullable=False),
    Column("last_login", String(32)),
    Column("is_active", Integer, nullable=False, server_default="1"),
)

_api_keys = Table(
    "api_keys",
    _metadata,
    Column("id", String(24), primary_key=True),
    Column("secret", String(128), nullable=False),
    Column("integration", String(191), nullable=False),
    Column("role", String(30), nullable=False, server_default="administrator"),
    Column("created_at", String(32), nullable=False),
    Column("last_used", String(32)),
    Column("is_active", Integer, nullable=False, server_default="1"),
)

_clients = Table(
    "clients",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("slug", String(191), nullable=False, unique=True),
    Column("name", String(191), nullable=False),
    Column("secret", String(191), nullable=False),
    Column("status", String(50), nullable=False, server_default="enabled"),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode per connection (PRAGMAs are not inherited)."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User, ApiKey and Client entities.

    Usage:
        store = UserStore()
        store.create_user(User(username="owner", role="owner", hashed_password=hash_password("secret")))
        user = store.get_by_username("owner")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(text("SELECT COUNT(*) FROM users")).scalar()
        return (result or 0) > 0

    def create_user(self, user: User) -> int:
        """Insert a new user and return its id.

        Raises sqlalchemy.exc.IntegrityError if the username already exists.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    username=user.username,
                    hashed_password=user.hashed_password,
                    role=user.role,
                    created_at=_now_iso(),
                    is_active=1 if user.is_active else 0,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_username(self, username: str) -> Optional[User]:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> Optional[User]:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def update_last_login(self, user_id: int) -> None:
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=_now_iso()))
            conn.commit()

    # ------------------------------------------------------------------
    # Admin API keys
    # ------------------------------------------------------------------

    def create_api_key(self, api_key: ApiKey) -> str:
        """Insert an admin API key and return its id (the JWT kid)."""
        with self.engine.connect() as conn:
            conn.execute(
                _api_keys.insert().values(
                    id=api_key.id,
                    secret=api_key.secret,
                    integration=api_key.integration,
                    role=api_key.role,
                    created_at=_now_iso(),
                    is_active=1 if api_key.is_active else 0,
                )
            )
            conn.commit()
        return api_key.id

    def get_api_key(self, key_id: str) -> Optional[ApiKey]:
        """Look up an active admin API key by id."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _api_keys.select().where((_api_keys.c.id == key_id) & (_api_keys.c.is_active == 1))
            ).fetchone()
        return _row_to_api_key(row) if row is not None else None

    def update_api_key_last_used(self, key_id: str) -> None:
        with self.engine.connect() as conn:
            conn.execute(_api_keys.update().where(_api_keys.c.id == key_id).values(last_used=_now_iso()))
            conn.commit()

    def revoke_api_key(self, key_id: str) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_api_keys.update().where(_api_keys.c.id == key_id).values(is_active=0))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Clients
    # ------------------------------------------------------------------

    def create_client(self, client: Client) -> int:
        """Insert a client. Raises IntegrityError on a duplicate slug."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _clients.insert().values(
                    slug=client.slug,
                    name=client.name,
                    secret=client.secret,
                    status=client.status,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_client_by_slug(self, slug: str) -> Optional[Client]:
        with self.engine.connect() as conn:
            row = conn.execute(_clients.select().where(_clients.c.slug == slug)).fetchone()
        return _row_to_client(row) if row is not None else None

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        hashed_password=row.hashed_password,
        role=row.role,
        created_at=row.created_at,
        last_login=row.last_login,
        is_active=bool(row.is_active),
    )


def _row_to_api_key(row) -> ApiKey:
    return ApiKey(
        id=row.id,
        secret=row.secret,
        integration=row.integration,
        role=row.role,
        created_at=row.created_at,
        last_used=row.last_used,
        is_active=bool(row.is_active),
    )


def _row_to_client(row) -> Client:
    return Client(
        id=row.id,
        slug=row.slug,
        name=row.name,
        secret=row.secret,
        status=row.status,
    )
