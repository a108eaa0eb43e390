"""
Persistence for shifts, employers, sites and user accounts.

Two backends share one interface: a local SQLite file and a managed
Supabase project. Every shift/employer/site call takes the caller's
UserSession and only ever sees that user's rows.
"""
import logging
import sqlite3
import threading
import uuid
from functools import lru_cache
from typing import Callable, Optional

from supabase import create_client

from .config import settings
from .models import UserSession

logger = logging.getLogger(__name__)

COLLECTIONS = ("shifts", "employers", "sites")

# Writable columns per collection (user_id and id are managed by the store)
FIELDS = {
    "shifts": ("date", "start_time", "end_time", "hours", "hourly_rate",
               "total_earnings", "status", "employer_id", "site_id"),
    "employers": ("name", "default_rate"),
    "sites": ("site_name", "postal_code"),
}


class StoreError(Exception):
    """A persistence backend rejected an operation."""


class Subscription:
    """Live view over a filtered collection. Call cancel() to stop updates."""

    def __init__(self, store, collection: str, session: UserSession,
                 callback: Callable[[list[dict]], None], filters: dict):
        self.store = store
        self.collection = collection
        self.session = session
        self.callback = callback
        self.filters = filters
        self.active = True

    def refresh(self):
        if self.active:
            self.callback(self.store.list(self.collection, self.session, **self.filters))

    def cancel(self):
        self.active = False
        self.store._unsubscribe(self)


class BaseStore:
    def __init__(self):
        self._subscriptions: list[Subscription] = []
        self._sub_lock = threading.Lock()

    # --- Subscriptions ---

    def subscribe(self, collection: str, session: UserSession,
                  callback: Callable[[list[dict]], None], **filters) -> Subscription:
        """Deliver the current result set now and again after every write to the collection."""
        self._check_collection(collection)
        sub = Subscription(self, collection, session, callback, filters)
        sub.refresh()
        with self._sub_lock:
            self._subscriptions.append(sub)
        return sub

    def _unsubscribe(self, sub: Subscription):
        with self._sub_lock:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

    def _notify(self, session: UserSession, *collections: str):
        with self._sub_lock:
            subs = [s for s in self._subscriptions
                    if s.collection in collections and s.session.user_id == session.user_id]
        for sub in subs:
            try:
                sub.refresh()
            except Exception:
                logger.exception("Subscriber on %s failed after a write", sub.collection)

    @staticmethod
    def _check_collection(collection: str):
        if collection not in COLLECTIONS:
            raise StoreError(f"Unknown collection: {collection}")

    @staticmethod
    def _clean(collection: str, data: dict) -> dict:
        return {k: v for k, v in data.items() if k in FIELDS[collection]}

    # --- Records ---

    def list(self, collection: str, session: UserSession, date_from: Optional[str] = None,
             date_to: Optional[str] = None, descending: bool = False,
             limit: Optional[int] = None) -> list[dict]:
        self._check_collection(collection)
        return self._select(collection, session.user_id, date_from, date_to, descending, limit)

    def get(self, collection: str, session: UserSession, record_id: str) -> Optional[dict]:
        self._check_collection(collection)
        return self._select_one(collection, session.user_id, record_id)

    def create(self, collection: str, session: UserSession, data: dict) -> str:
        self._check_collection(collection)
        record = self._clean(collection, data)
        record["id"] = str(uuid.uuid4())
        self._insert(collection, session.user_id, record)
        self._notify(session, collection)
        return record["id"]

    def update(self, collection: str, session: UserSession, record_id: str, data: dict) -> bool:
        self._check_collection(collection)
        changes = self._clean(collection, data)
        if not changes:
            return self.get(collection, session, record_id) is not None
        updated = self._update(collection, session.user_id, record_id, changes)
        if updated:
            self._notify(session, collection)
        return updated

    def delete(self, collection: str, session: UserSession, record_id: str) -> bool:
        self._check_collection(collection)
        deleted = self._delete(collection, session.user_id, record_id)
        if deleted:
            self._notify(session, collection)
        return deleted

    def commit_batch(self, session: UserSession, batch) -> None:
        """
        Write every staged employer, site and shift of an ImportBatch, or
        none of them. Raises StoreError when the backend rejects the batch.
        """
        payload = {
            "employers": [self._clean("employers", e) | {"id": e["id"]} for e in batch.new_employers],
            "sites": [self._clean("sites", s) | {"id": s["id"]} for s in batch.new_sites],
            "shifts": [self._clean("shifts", s) | {"id": s["id"]} for s in batch.new_shifts],
        }
        self._commit(session.user_id, payload)
        self._notify(session, *COLLECTIONS)

    # Backend hooks
    def _select(self, collection, user_id, date_from, date_to, descending, limit):
        raise NotImplementedError

    def _select_one(self, collection, user_id, record_id):
        raise NotImplementedError

    def _insert(self, collection, user_id, record):
        raise NotImplementedError

    def _update(self, collection, user_id, record_id, changes):
        raise NotImplementedError

    def _delete(self, collection, user_id, record_id):
        raise NotImplementedError

    def _commit(self, user_id, payload):
        raise NotImplementedError


# --- SQLite ---

def get_db_connection(db_name: Optional[str] = None):
    conn = sqlite3.connect(db_name or settings.DB_NAME)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def init_db(db_name: Optional[str] = None):
    conn = get_db_connection(db_name)
    c = conn.cursor()

    c.execute("""
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        email TEXT UNIQUE NOT NULL,
        name TEXT NOT NULL,
        password_hash TEXT NOT NULL,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP
    );
    """)

    c.execute("""
    CREATE TABLE IF NOT EXISTS password_reset_tokens (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        token TEXT NOT NULL,
        expires_at TEXT NOT NULL,
        used INTEGER DEFAULT 0,
        FOREIGN KEY(user_id) REFERENCES users(id)
    );
    """)

    c.execute("""
    CREATE TABLE IF NOT EXISTS employers (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        name TEXT NOT NULL,
        default_rate REAL,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP
    );
    """)

    c.execute("""
    CREATE TABLE IF NOT EXISTS sites (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        site_name TEXT NOT NULL,
        postal_code TEXT DEFAULT '',
        created_at TEXT DEFAULT CURRENT_TIMESTAMP
    );
    """)

    c.execute("""
    CREATE TABLE IF NOT EXISTS shifts (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        date TEXT NOT NULL,
        start_time TEXT DEFAULT '',
        end_time TEXT DEFAULT '',
        hours REAL DEFAULT 0,
        hourly_rate REAL DEFAULT 0,
        total_earnings REAL DEFAULT 0,
        status TEXT NOT NULL DEFAULT 'pending',
        employer_id TEXT NOT NULL REFERENCES employers(id),
        site_id TEXT NOT NULL REFERENCES sites(id),
        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
        updated_at TEXT DEFAULT CURRENT_TIMESTAMP
    );
    """)
    c.execute("CREATE INDEX IF NOT EXISTS ix_shifts_user_date ON shifts(user_id, date);")

    conn.commit()
    conn.close()


def _insert_sql(collection: str, record: dict) -> tuple[str, list]:
    columns = ["user_id"] + list(record.keys())
    placeholders = ", ".join("?" for _ in columns)
    return f"INSERT INTO {collection} ({', '.join(columns)}) VALUES ({placeholders})", columns


class SQLiteStore(BaseStore):
    def __init__(self, db_name: Optional[str] = None):
        super().__init__()
        self.db_name = db_name or settings.DB_NAME
        init_db(self.db_name)

    def _select(self, collection, user_id, date_from, date_to, descending, limit):
        query = f"SELECT * FROM {collection} WHERE user_id = ?"
        params = [user_id]

        if collection == "shifts":
            if date_from:
                query += " AND date >= ?"
                params.append(date_from)
            if date_to:
                query += " AND date <= ?"
                params.append(date_to)
            query += f" ORDER BY date {'DESC' if descending else 'ASC'}, start_time"
        if limit:
            query += " LIMIT ?"
            params.append(int(limit))

        conn = get_db_connection(self.db_name)
        try:
            rows = conn.execute(query, params).fetchall()
            return [dict(row) for row in rows]
        finally:
            conn.close()

    def _select_one(self, collection, user_id, record_id):
        conn = get_db_connection(self.db_name)
        try:
            row = conn.execute(f"SELECT * FROM {collection} WHERE id = ? AND user_id = ?",
                               (record_id, user_id)).fetchone()
            return dict(row) if row else None
        finally:
            conn.close()

    def _insert(self, collection, user_id, record):
        sql, columns = _insert_sql(collection, record)
        conn = get_db_connection(self.db_name)
        try:
            with conn:
                conn.execute(sql, [user_id] + [record[k] for k in columns[1:]])
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e
        finally:
            conn.close()

    def _update(self, collection, user_id, record_id, changes):
        fields = [f"{k} = ?" for k in changes]
        values = list(changes.values())
        if collection == "shifts":
            fields.append("updated_at = CURRENT_TIMESTAMP")
        values.extend([record_id, user_id])

        conn = get_db_connection(self.db_name)
        try:
            with conn:
                cur = conn.execute(
                    f"UPDATE {collection} SET {', '.join(fields)} WHERE id = ? AND user_id = ?", values)
            return cur.rowcount > 0
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e
        finally:
            conn.close()

    def _delete(self, collection, user_id, record_id):
        conn = get_db_connection(self.db_name)
        try:
            with conn:
                cur = conn.execute(f"DELETE FROM {collection} WHERE id = ? AND user_id = ?",
                                   (record_id, user_id))
            return cur.rowcount > 0
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e
        finally:
            conn.close()

    def _commit(self, user_id, payload):
        conn = get_db_connection(self.db_name)
        try:
            # Parents first so shift foreign keys resolve
            with conn:
                for collection in ("employers", "sites", "shifts"):
                    for record in payload[collection]:
                        sql, columns = _insert_sql(collection, record)
                        conn.execute(sql, [user_id] + [record[k] for k in columns[1:]])
        except sqlite3.Error as e:
            logger.exception("Import batch rolled back")
            raise StoreError(f"Import commit failed: {e}") from e
        finally:
            conn.close()

    # --- Accounts ---

    def find_user_by_email(self, email: str) -> Optional[dict]:
        conn = get_db_connection(self.db_name)
        try:
            row = conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
            return dict(row) if row else None
        finally:
            conn.close()

    def create_user(self, user: dict) -> None:
        conn = get_db_connection(self.db_name)
        try:
            with conn:
                conn.execute("INSERT INTO users (id, email, name, password_hash) VALUES (?, ?, ?, ?)",
                             (user["id"], user["email"], user["name"], user["password_hash"]))
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e
        finally:
            conn.close()

    def set_password_hash(self, user_id: str, password_hash: str) -> None:
        conn = get_db_connection(self.db_name)
        try:
            with conn:
                conn.execute("UPDATE users SET password_hash = ? WHERE id = ?", (password_hash, user_id))
        finally:
            conn.close()

    def create_reset_token(self, token: dict) -> None:
        conn = get_db_connection(self.db_name)
        try:
            with conn:
                conn.execute("INSERT INTO password_reset_tokens (id, user_id, token, expires_at) VALUES (?, ?, ?, ?)",
                             (token["id"], token["user_id"], token["token"], token["expires_at"]))
        finally:
            conn.close()

    def find_reset_token(self, token: str) -> Optional[dict]:
        conn = get_db_connection(self.db_name)
        try:
            row = conn.execute("SELECT * FROM password_reset_tokens WHERE token = ? AND used = 0",
                               (token,)).fetchone()
            return dict(row) if row else None
        finally:
            conn.close()

    def mark_reset_token_used(self, token_id: str) -> None:
        conn = get_db_connection(self.db_name)
        try:
            with conn:
                conn.execute("UPDATE password_reset_tokens SET used = 1 WHERE id = ?", (token_id,))
        finally:
            conn.close()


# --- Supabase ---

def get_supabase_client():
    if not settings.SUPABASE_URL or not settings.SUPABASE_KEY:
        raise StoreError("SUPABASE_URL and SUPABASE_KEY must be set for the supabase backend")
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)


class SupabaseStore(BaseStore):
    """
    Managed Postgres via the Supabase client. Batch imports go through the
    commit_import_batch function (supabase/schema.sql), which runs as a
    single transaction.
    """

    def __init__(self, client=None):
        super().__init__()
        self.client = client or get_supabase_client()

    @staticmethod
    def _run(query):
        try:
            return query.execute().data
        except Exception as e:
            raise StoreError(str(e)) from e

    def _select(self, collection, user_id, date_from, date_to, descending, limit):
        query = self.client.table(collection).select("*").eq("user_id", user_id)
        if collection == "shifts":
            if date_from:
                query = query.gte("date", date_from)
            if date_to:
                query = query.lte("date", date_to)
            query = query.order("date", desc=descending).order("start_time")
        if limit:
            query = query.limit(limit)
        return self._run(query) or []

    def _select_one(self, collection, user_id, record_id):
        data = self._run(self.client.table(collection).select("*").eq("id", record_id).eq("user_id", user_id))
        return data[0] if data else None

    def _insert(self, collection, user_id, record):
        self._run(self.client.table(collection).insert({**record, "user_id": user_id}))

    def _update(self, collection, user_id, record_id, changes):
        data = self._run(self.client.table(collection).update(changes).eq("id", record_id).eq("user_id", user_id))
        return bool(data)

    def _delete(self, collection, user_id, record_id):
        data = self._run(self.client.table(collection).delete().eq("id", record_id).eq("user_id", user_id))
        return bool(data)

    def _commit(self, user_id, payload):
        try:
            self.client.rpc("commit_import_batch", {
                "p_user_id": user_id,
                "p_employers": payload["employers"],
                "p_sites": payload["sites"],
                "p_shifts": payload["shifts"],
            }).execute()
        except Exception as e:
            logger.exception("Import batch rejected by supabase")
            raise StoreError(f"Import commit failed: {e}") from e

    # --- Accounts ---

    def find_user_by_email(self, email: str) -> Optional[dict]:
        data = self._run(self.client.table("users").select("*").eq("email", email))
        return data[0] if data else None

    def create_user(self, user: dict) -> None:
        self._run(self.client.table("users").insert(user))

    def set_password_hash(self, user_id: str, password_hash: str) -> None:
        self._run(self.client.table("users").update({"password_hash": password_hash}).eq("id", user_id))

    def create_reset_token(self, token: dict) -> None:
        self._run(self.client.table("password_reset_tokens").insert(token))

    def find_reset_token(self, token: str) -> Optional[dict]:
        data = self._run(self.client.table("password_reset_tokens").select("*").eq("token", token).eq("used", False))
        return data[0] if data else None

    def mark_reset_token_used(self, token_id: str) -> None:
        self._run(self.client.table("password_reset_tokens").update({"used": True}).eq("id", token_id))


@lru_cache
def get_store() -> BaseStore:
    if settings.STORE_BACKEND == "supabase":
        return SupabaseStore()
    return SQLiteStore()
