"""SQLite database for accounts, health records, providers, requests and alerts."""

from __future__ import annotations

import json
import os
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any, Iterable

import platformdirs


def _now() -> str:
    """Return current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _new_id() -> str:
    return str(uuid.uuid4())


def _like(term: str) -> str:
    """Substring LIKE pattern with wildcards in ``term`` matched literally (ESCAPE '\\')."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL UNIQUE COLLATE NOCASE,
    password_hash TEXT NOT NULL,
    role TEXT NOT NULL DEFAULT 'patient',
    type TEXT NOT NULL DEFAULT 'individual',
    profile_json TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    updated_at TEXT,
    last_sign_in_at TEXT
);

CREATE TABLE IF NOT EXISTS settings (
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    key TEXT NOT NULL,
    value TEXT NOT NULL,
    updated_at TEXT,
    PRIMARY KEY (user_id, key)
);

CREATE TABLE IF NOT EXISTS conditions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    icd10_code TEXT,
    disease_id TEXT,
    onset_date TEXT,
    clinical_status TEXT NOT NULL DEFAULT 'active',
    verification_status TEXT NOT NULL DEFAULT 'provisional',
    notes TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS medications (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    generic_name TEXT,
    dosage TEXT,
    frequency TEXT,
    status TEXT NOT NULL DEFAULT 'active',
    type TEXT NOT NULL DEFAULT 'prescription',
    start_date TEXT,
    end_date TEXT,
    prescriber TEXT,
    instructions TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS labs (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    test_name TEXT NOT NULL,
    value REAL NOT NULL,
    unit TEXT,
    reference_range TEXT,
    category TEXT,
    observed TEXT,
    provider TEXT,
    notes TEXT,
    is_abnormal INTEGER NOT NULL DEFAULT 0,
    severity TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS vitals (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    type TEXT NOT NULL,
    value REAL,
    systolic REAL,
    diastolic REAL,
    unit TEXT,
    observed TEXT,
    location TEXT,
    notes TEXT,
    is_abnormal INTEGER NOT NULL DEFAULT 0,
    severity TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS procedures (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    description TEXT,
    type TEXT NOT NULL DEFAULT 'diagnostic',
    status TEXT NOT NULL DEFAULT 'scheduled',
    date TEXT,
    location TEXT,
    provider TEXT,
    duration TEXT,
    outcome TEXT,
    notes TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS providers (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    phone TEXT,
    fax TEXT,
    email TEXT,
    contact_json TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS facilities (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    phone TEXT,
    address_json TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS provider_facilities (
    provider_id TEXT NOT NULL REFERENCES providers(id) ON DELETE CASCADE,
    facility_id TEXT NOT NULL REFERENCES facilities(id) ON DELETE CASCADE,
    PRIMARY KEY (provider_id, facility_id)
);

CREATE TABLE IF NOT EXISTS record_requests (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    tracking_number TEXT NOT NULL UNIQUE,
    title TEXT NOT NULL,
    description TEXT,
    request_type TEXT NOT NULL,
    provider_id TEXT REFERENCES providers(id) ON DELETE SET NULL,
    provider_name TEXT NOT NULL,
    record_types TEXT NOT NULL DEFAULT '[]',
    date_start TEXT,
    date_end TEXT,
    priority TEXT NOT NULL DEFAULT 'medium',
    urgent_reason TEXT,
    notes TEXT,
    contact_preference TEXT NOT NULL DEFAULT 'email',
    delivery_method TEXT NOT NULL DEFAULT 'secure_portal',
    status TEXT NOT NULL DEFAULT 'pending',
    progress INTEGER NOT NULL DEFAULT 0,
    estimated_completion TEXT,
    due_date TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    completed_at TEXT,
    cancelled_at TEXT,
    cancellation_reason TEXT
);

CREATE TABLE IF NOT EXISTS request_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    request_id TEXT NOT NULL REFERENCES record_requests(id) ON DELETE CASCADE,
    event_type TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS request_documents (
    id TEXT PRIMARY KEY,
    request_id TEXT NOT NULL REFERENCES record_requests(id) ON DELETE CASCADE,
    filename TEXT NOT NULL,
    stored_path TEXT NOT NULL,
    content_type TEXT,
    size INTEGER NOT NULL,
    uploaded_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS alerts (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    alert_type TEXT NOT NULL DEFAULT 'health',
    severity TEXT NOT NULL DEFAULT 'medium',
    title TEXT NOT NULL,
    message TEXT,
    data TEXT NOT NULL DEFAULT '{}',
    status TEXT NOT NULL DEFAULT 'active',
    expires_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS phi_access_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    action TEXT NOT NULL,
    resource_type TEXT NOT NULL,
    resource_id TEXT,
    ip_address TEXT,
    user_agent TEXT,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);

CREATE INDEX IF NOT EXISTS idx_record_requests_user ON record_requests(user_id, status);
CREATE INDEX IF NOT EXISTS idx_alerts_user ON alerts(user_id, status);
CREATE INDEX IF NOT EXISTS idx_phi_access_user ON phi_access_log(user_id, created_at);
"""

# Writable columns per health record table
_RECORD_COLUMNS: dict[str, tuple[str, ...]] = {
    "conditions": (
        "name", "icd10_code", "disease_id", "onset_date",
        "clinical_status", "verification_status", "notes",
    ),
    "medications": (
        "name", "generic_name", "dosage", "frequency", "status", "type",
        "start_date", "end_date", "prescriber", "instructions",
    ),
    "labs": (
        "test_name", "value", "unit", "reference_range", "category",
        "observed", "provider", "notes", "is_abnormal", "severity",
    ),
    "vitals": (
        "type", "value", "systolic", "diastolic", "unit", "observed",
        "location", "notes", "is_abnormal", "severity",
    ),
    "procedures": (
        "name", "description", "type", "status", "date", "location",
        "provider", "duration", "outcome", "notes",
    ),
}
_SEARCH_COLUMN = {
    "conditions": "name",
    "medications": "name",
    "labs": "test_name",
    "vitals": "type",
    "procedures": "name",
}
_STATUS_COLUMN = {
    "conditions": "clinical_status",
    "medications": "status",
    "procedures": "status",
}
_DATE_COLUMN = {
    "conditions": "onset_date",
    "medications": "start_date",
    "labs": "observed",
    "vitals": "observed",
    "procedures": "date",
}
_BOOL_COLUMNS = {"is_abnormal"}

_REQUEST_COLUMNS = (
    "title", "description", "request_type", "provider_id", "provider_name",
    "record_types", "date_start", "date_end", "priority", "urgent_reason",
    "notes", "contact_preference", "delivery_method", "status", "progress",
    "estimated_completion", "due_date", "completed_at", "cancelled_at",
    "cancellation_reason",
)
_ALERT_COLUMNS = ("alert_type", "severity", "title", "message", "data", "status", "expires_at")

# Alert severities, most urgent first
_SEVERITY_ORDER = "CASE severity WHEN 'critical' THEN 0 WHEN 'high' THEN 1 WHEN 'medium' THEN 2 ELSE 3 END"


def get_data_dir() -> str:
    """Return the directory holding the database and uploaded documents."""
    data_dir = os.getenv("DATA_DIR") or platformdirs.user_data_dir("Fountain")
    os.makedirs(data_dir, exist_ok=True)
    return data_dir


def _get_db_path() -> str:
    """Return OS-appropriate path for fountain.db."""
    return os.getenv("DATABASE_PATH") or os.path.join(get_data_dir(), "fountain.db")


def _decode_record(table: str, row: sqlite3.Row) -> dict[str, Any]:
    record = dict(row)
    for col in _BOOL_COLUMNS:
        if col in record:
            record[col] = bool(record[col])
    return record


def _decode_user(row: sqlite3.Row) -> dict[str, Any]:
    user = dict(row)
    user["profile_json"] = json.loads(user.get("profile_json") or "{}")
    return user


def _decode_provider(row: sqlite3.Row, facility_ids: list[str]) -> dict[str, Any]:
    provider = dict(row)
    provider["contact_json"] = json.loads(provider.get("contact_json") or "{}")
    provider["facility_ids"] = facility_ids
    return provider


def _decode_request(row: sqlite3.Row) -> dict[str, Any]:
    request = dict(row)
    request["record_types"] = json.loads(request.get("record_types") or "[]")
    return request


def _decode_alert(row: sqlite3.Row) -> dict[str, Any]:
    alert = dict(row)
    alert["data"] = json.loads(alert.get("data") or "{}")
    return alert


class Database:
    """SQLite-backed storage for every per-user resource."""

    def __init__(self, db_path: str | None = None) -> None:
        self._db_path = db_path or _get_db_path()
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def _init_db(self) -> None:
        conn = self._get_conn()
        try:
            conn.executescript(_SCHEMA)
            conn.commit()
        finally:
            conn.close()

    # --- Users ---

    def create_user(
        self,
        email: str,
        password_hash: str,
        role: str = "patient",
        user_type: str = "individual",
        profile: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Insert a user. Returns None when the email is already registered."""
        conn = self._get_conn()
        try:
            user_id = _new_id()
            now = _now()
            try:
                conn.execute(
                    """INSERT INTO users (id, email, password_hash, role, type, profile_json, created_at, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                    (user_id, email.strip(), password_hash, role, user_type,
                     json.dumps(profile or {}), now, now),
                )
            except sqlite3.IntegrityError:
                return None
            conn.commit()
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            return _decode_user(row)
        finally:
            conn.close()

    def get_user(self, user_id: str) -> dict[str, Any] | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            return _decode_user(row) if row else None
        finally:
            conn.close()

    def get_user_by_email(self, email: str) -> dict[str, Any] | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?", (email.strip(),)
            ).fetchone()
            return _decode_user(row) if row else None
        finally:
            conn.close()

    def update_user_profile(self, user_id: str, profile: dict[str, Any]) -> dict[str, Any] | None:
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                "UPDATE users SET profile_json = ?, updated_at = ? WHERE id = ?",
                (json.dumps(profile), _now(), user_id),
            )
            conn.commit()
            if cursor.rowcount == 0:
                return None
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            return _decode_user(row)
        finally:
            conn.close()

    def set_password_hash(self, user_id: str, password_hash: str) -> bool:
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                "UPDATE users SET password_hash = ?, updated_at = ? WHERE id = ?",
                (password_hash, _now(), user_id),
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def touch_sign_in(self, user_id: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                "UPDATE users SET last_sign_in_at = ? WHERE id = ?", (_now(), user_id)
            )
            conn.commit()
        finally:
            conn.close()

    def delete_user(self, user_id: str) -> bool:
        """Delete a user; every per-user row goes with it via ON DELETE CASCADE."""
        conn = self._get_conn()
        try:
            cursor = conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
            conn.execute("DELETE FROM phi_access_log WHERE user_id = ?", (user_id,))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    # --- Settings ---

    def get_setting(self, user_id: str, key: str) -> str | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT value FROM settings WHERE user_id = ? AND key = ?", (user_id, key)
            ).fetchone()
            return row["value"] if row else None
        finally:
            conn.close()

    def set_setting(self, user_id: str, key: str, value: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                "INSERT OR REPLACE INTO settings (user_id, key, value, updated_at) VALUES (?, ?, ?, ?)",
                (user_id, key, value, _now()),
            )
            conn.commit()
        finally:
            conn.close()

    def get_all_settings(self, user_id: str) -> dict[str, str]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT key, value FROM settings WHERE user_id = ?", (user_id,)
            ).fetchall()
            return {row["key"]: row["value"] for row in rows}
        finally:
            conn.close()

    def delete_setting(self, user_id: str, key: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM settings WHERE user_id = ? AND key = ?", (user_id, key))
            conn.commit()
        finally:
            conn.close()

    def clear_settings(self, user_id: str) -> int:
        conn = self._get_conn()
        try:
            cursor = conn.execute("DELETE FROM settings WHERE user_id = ?", (user_id,))
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()

    # --- Health records ---

    @staticmethod
    def _check_category(category: str) -> None:
        if category not in _RECORD_COLUMNS:
            raise ValueError(f"Unknown health record category: {category}")

    def create_record(self, category: str, user_id: str, data: dict[str, Any]) -> dict[str, Any]:
        self._check_category(category)
        allowed = _RECORD_COLUMNS[category]
        values = {k: v for k, v in data.items() if k in allowed}
        record_id = _new_id()
        now = _now()
        insert_data = {"id": record_id, "user_id": user_id, **values, "created_at": now, "updated_at": now}
        for k, v in insert_data.items():
            if isinstance(v, bool):
                insert_data[k] = 1 if v else 0
        cols = ", ".join(insert_data.keys())
        placeholders = ", ".join("?" for _ in insert_data)
        conn = self._get_conn()
        try:
            conn.execute(
                f"INSERT INTO {category} ({cols}) VALUES ({placeholders})",
                list(insert_data.values()),
            )
            conn.commit()
            row = conn.execute(
                f"SELECT * FROM {category} WHERE id = ?", (record_id,)
            ).fetchone()
            return _decode_record(category, row)
        finally:
            conn.close()

    def list_records(
        self,
        category: str,
        user_id: str,
        search: str | None = None,
        status: str | None = None,
        abnormal_only: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Return a user's records for one category, newest first."""
        self._check_category(category)
        conditions = ["user_id = ?"]
        params: list[Any] = [user_id]

        if search:
            conditions.append(f"{_SEARCH_COLUMN[category]} LIKE ? ESCAPE '\\'")
            params.append(_like(search))
        if status and category in _STATUS_COLUMN:
            conditions.append(f"{_STATUS_COLUMN[category]} = ?")
            params.append(status)
        if abnormal_only and "is_abnormal" in _RECORD_COLUMNS[category]:
            conditions.append("is_abnormal = 1")

        sql = (
            f"SELECT * FROM {category} WHERE {' AND '.join(conditions)} "
            f"ORDER BY COALESCE({_DATE_COLUMN[category]}, created_at) DESC, created_at DESC, rowid DESC"
        )
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        conn = self._get_conn()
        try:
            rows = conn.execute(sql, params).fetchall()
            return [_decode_record(category, row) for row in rows]
        finally:
            conn.close()

    def count_records(
        self,
        category: str,
        user_id: str,
        status: str | None = None,
        abnormal_only: bool = False,
    ) -> int:
        self._check_category(category)
        conditions = ["user_id = ?"]
        params: list[Any] = [user_id]
        if status and category in _STATUS_COLUMN:
            conditions.append(f"{_STATUS_COLUMN[category]} = ?")
            params.append(status)
        if abnormal_only and "is_abnormal" in _RECORD_COLUMNS[category]:
            conditions.append("is_abnormal = 1")
        conn = self._get_conn()
        try:
            row = conn.execute(
                f"SELECT COUNT(*) as cnt FROM {category} WHERE {' AND '.join(conditions)}",
                params,
            ).fetchone()
            return row["cnt"]
        finally:
            conn.close()

    def get_record(self, category: str, user_id: str, record_id: str) -> dict[str, Any] | None:
        self._check_category(category)
        conn = self._get_conn()
        try:
            row = conn.execute(
                f"SELECT * FROM {category} WHERE id = ? AND user_id = ?", (record_id, user_id)
            ).fetchone()
            return _decode_record(category, row) if row else None
        finally:
            conn.close()

    def update_record(
        self, category: str, user_id: str, record_id: str, updates: dict[str, Any]
    ) -> dict[str, Any] | None:
        self._check_category(category)
        allowed = _RECORD_COLUMNS[category]
        updates = {k: v for k, v in updates.items() if k in allowed}
        conn = self._get_conn()
        try:
            existing = conn.execute(
                f"SELECT * FROM {category} WHERE id = ? AND user_id = ?", (record_id, user_id)
            ).fetchone()
            if not existing:
                return None
            if updates:
                values = [1 if v is True else 0 if v is False else v for v in updates.values()]
                set_clause = ", ".join(f"{k} = ?" for k in updates)
                conn.execute(
                    f"UPDATE {category} SET {set_clause}, updated_at = ? WHERE id = ?",
                    values + [_now(), record_id],
                )
                conn.commit()
            row = conn.execute(f"SELECT * FROM {category} WHERE id = ?", (record_id,)).fetchone()
            return _decode_record(category, row)
        finally:
            conn.close()

    def delete_record(self, category: str, user_id: str, record_id: str) -> bool:
        self._check_category(category)
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                f"DELETE FROM {category} WHERE id = ? AND user_id = ?", (record_id, user_id)
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    # --- Providers ---

    @staticmethod
    def _facility_ids(conn: sqlite3.Connection, provider_id: str) -> list[str]:
        rows = conn.execute(
            "SELECT facility_id FROM provider_facilities WHERE provider_id = ? ORDER BY facility_id",
            (provider_id,),
        ).fetchall()
        return [row["facility_id"] for row in rows]

    @staticmethod
    def _set_facility_ids(
        conn: sqlite3.Connection, user_id: str, provider_id: str, facility_ids: list[str]
    ) -> None:
        conn.execute("DELETE FROM provider_facilities WHERE provider_id = ?", (provider_id,))
        for facility_id in facility_ids:
            owned = conn.execute(
                "SELECT 1 FROM facilities WHERE id = ? AND user_id = ?", (facility_id, user_id)
            ).fetchone()
            if owned:
                conn.execute(
                    "INSERT OR IGNORE INTO provider_facilities (provider_id, facility_id) VALUES (?, ?)",
                    (provider_id, facility_id),
                )

    def create_provider(
        self,
        user_id: str,
        name: str,
        phone: str | None = None,
        fax: str | None = None,
        email: str | None = None,
        contact: dict[str, Any] | None = None,
        facility_ids: list[str] | None = None,
    ) -> dict[str, Any]:
        conn = self._get_conn()
        try:
            provider_id = _new_id()
            now = _now()
            conn.execute(
                """INSERT INTO providers (id, user_id, name, phone, fax, email, contact_json, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (provider_id, user_id, name, phone, fax, email,
                 json.dumps(contact or {}), now, now),
            )
            if facility_ids:
                self._set_facility_ids(conn, user_id, provider_id, facility_ids)
            conn.commit()
            row = conn.execute("SELECT * FROM providers WHERE id = ?", (provider_id,)).fetchone()
            return _decode_provider(row, self._facility_ids(conn, provider_id))
        finally:
            conn.close()

    def list_providers(self, user_id: str, name: str | None = None) -> list[dict[str, Any]]:
        conn = self._get_conn()
        try:
            if name:
                rows = conn.execute(
                    "SELECT * FROM providers WHERE user_id = ? AND name LIKE ? ESCAPE '\\' ORDER BY name COLLATE NOCASE",
                    (user_id, _like(name)),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM providers WHERE user_id = ? ORDER BY name COLLATE NOCASE",
                    (user_id,),
                ).fetchall()
            return [_decode_provider(row, self._facility_ids(conn, row["id"])) for row in rows]
        finally:
            conn.close()

    def get_provider(self, user_id: str, provider_id: str) -> dict[str, Any] | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM providers WHERE id = ? AND user_id = ?", (provider_id, user_id)
            ).fetchone()
            if not row:
                return None
            return _decode_provider(row, self._facility_ids(conn, provider_id))
        finally:
            conn.close()

    def update_provider(self, user_id: str, provider_id: str, **kwargs: Any) -> dict[str, Any] | None:
        conn = self._get_conn()
        try:
            existing = conn.execute(
                "SELECT * FROM providers WHERE id = ? AND user_id = ?", (provider_id, user_id)
            ).fetchone()
            if not existing:
                return None

            facility_ids = kwargs.pop("facility_ids", None)
            allowed = {"name", "phone", "fax", "email", "contact_json"}
            updates = {k: v for k, v in kwargs.items() if k in allowed}
            if "contact_json" in updates:
                updates["contact_json"] = json.dumps(updates["contact_json"] or {})
            if updates:
                set_clause = ", ".join(f"{k} = ?" for k in updates)
                conn.execute(
                    f"UPDATE providers SET {set_clause}, updated_at = ? WHERE id = ?",
                    list(updates.values()) + [_now(), provider_id],
                )
            if facility_ids is not None:
                self._set_facility_ids(conn, user_id, provider_id, facility_ids)
            conn.commit()
            row = conn.execute("SELECT * FROM providers WHERE id = ?", (provider_id,)).fetchone()
            return _decode_provider(row, self._facility_ids(conn, provider_id))
        finally:
            conn.close()

    def delete_provider(self, user_id: str, provider_id: str) -> bool:
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                "DELETE FROM providers WHERE id = ? AND user_id = ?", (provider_id, user_id)
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    # --- Facilities ---

    def create_facility(
        self,
        user_id: str,
        name: str,
        phone: str | None = None,
        address: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        conn = self._get_conn()
        try:
            facility_id = _new_id()
            conn.execute(
                """INSERT INTO facilities (id, user_id, name, phone, address_json, created_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (facility_id, user_id, name, phone, json.dumps(address or {}), _now()),
            )
            conn.commit()
            return self._facility_row(conn, facility_id)  # type: ignore[return-value]
        finally:
            conn.close()

    @staticmethod
    def _facility_row(conn: sqlite3.Connection, facility_id: str) -> dict[str, Any] | None:
        row = conn.execute("SELECT * FROM facilities WHERE id = ?", (facility_id,)).fetchone()
        if not row:
            return None
        facility = dict(row)
        facility["address"] = json.loads(facility.pop("address_json") or "{}")
        providers = conn.execute(
            "SELECT provider_id FROM provider_facilities WHERE facility_id = ? ORDER BY provider_id",
            (facility_id,),
        ).fetchall()
        facility["provider_ids"] = [r["provider_id"] for r in providers]
        return facility

    def list_facilities(self, user_id: str, name: str | None = None) -> list[dict[str, Any]]:
        conn = self._get_conn()
        try:
            params: list[Any] = [user_id]
            sql = "SELECT id FROM facilities WHERE user_id = ?"
            if name:
                sql += " AND name LIKE ? ESCAPE '\\'"
                params.append(_like(name))
            sql += " ORDER BY name COLLATE NOCASE"
            rows = conn.execute(sql, params).fetchall()
            return [self._facility_row(conn, row["id"]) for row in rows]  # type: ignore[misc]
        finally:
            conn.close()

    def get_facility(self, user_id: str, facility_id: str) -> dict[str, Any] | None:
        conn = self._get_conn()
        try:
            owned = conn.execute(
                "SELECT 1 FROM facilities WHERE id = ? AND user_id = ?", (facility_id, user_id)
            ).fetchone()
            if not owned:
                return None
            return self._facility_row(conn, facility_id)
        finally:
            conn.close()

    def attach_provider(self, user_id: str, facility_id: str, provider_id: str) -> bool:
        """Link a provider to a facility. False when either is not the user's."""
        conn = self._get_conn()
        try:
            facility = conn.execute(
                "SELECT 1 FROM facilities WHERE id = ? AND user_id = ?", (facility_id, user_id)
            ).fetchone()
            provider = conn.execute(
                "SELECT 1 FROM providers WHERE id = ? AND user_id = ?", (provider_id, user_id)
            ).fetchone()
            if not facility or not provider:
                return False
            conn.execute(
                "INSERT OR IGNORE INTO provider_facilities (provider_id, facility_id) VALUES (?, ?)",
                (provider_id, facility_id),
            )
            conn.commit()
            return True
        finally:
            conn.close()

    # --- Record requests ---

    def create_request(
        self,
        user_id: str,
        tracking_numbers: str | Iterable[str],
        data: dict[str, Any],
    ) -> dict[str, Any]:
        """Insert a request under the first tracking number not already taken.

        ``tracking_numbers`` is a single number or a sequence of candidates;
        a candidate that hits the UNIQUE constraint moves on to the next.
        """
        if isinstance(tracking_numbers, str):
            tracking_numbers = [tracking_numbers]
        values = {k: v for k, v in data.items() if k in _REQUEST_COLUMNS}
        values["record_types"] = json.dumps(values.get("record_types") or [])
        request_id = _new_id()
        now = data.get("created_at") or _now()
        conn = self._get_conn()
        try:
            for tracking_number in tracking_numbers:
                insert_data = {
                    "id": request_id,
                    "user_id": user_id,
                    "tracking_number": tracking_number,
                    **values,
                    "created_at": now,
                    "updated_at": now,
                }
                cols = ", ".join(insert_data.keys())
                placeholders = ", ".join("?" for _ in insert_data)
                try:
                    conn.execute(
                        f"INSERT INTO record_requests ({cols}) VALUES ({placeholders})",
                        list(insert_data.values()),
                    )
                except sqlite3.IntegrityError as e:
                    if "tracking_number" not in str(e):
                        raise
                    continue
                conn.commit()
                row = conn.execute(
                    "SELECT * FROM record_requests WHERE id = ?", (request_id,)
                ).fetchone()
                return _decode_request(row)
            raise RuntimeError("Could not allocate a unique tracking number")
        finally:
            conn.close()

    def list_requests(
        self,
        user_id: str,
        status: str | None = None,
        request_type: str | None = None,
        priority: str | None = None,
        search: str | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[dict[str, Any]], int]:
        conn = self._get_conn()
        try:
            conditions = ["user_id = ?"]
            params: list[Any] = [user_id]

            if status:
                conditions.append("status = ?")
                params.append(status)
            if request_type:
                conditions.append("request_type = ?")
                params.append(request_type)
            if priority:
                conditions.append("priority = ?")
                params.append(priority)
            if search:
                like = _like(search)
                conditions.append(
                    "(title LIKE ? ESCAPE '\\' OR tracking_number LIKE ? ESCAPE '\\' "
                    "OR provider_name LIKE ? ESCAPE '\\')"
                )
                params.extend([like, like, like])

            where_clause = " WHERE " + " AND ".join(conditions)

            count_row = conn.execute(
                f"SELECT COUNT(*) as cnt FROM record_requests{where_clause}",
                params,
            ).fetchone()
            total = count_row["cnt"]

            rows = conn.execute(
                f"""SELECT * FROM record_requests{where_clause}
                    ORDER BY created_at DESC, rowid DESC
                    LIMIT ? OFFSET ?""",
                params + [limit, offset],
            ).fetchall()

            return [_decode_request(row) for row in rows], total
        finally:
            conn.close()

    def get_request(self, user_id: str, request_id: str) -> dict[str, Any] | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM record_requests WHERE id = ? AND user_id = ?",
                (request_id, user_id),
            ).fetchone()
            return _decode_request(row) if row else None
        finally:
            conn.close()

    def update_request(self, user_id: str, request_id: str, **kwargs: Any) -> dict[str, Any] | None:
        conn = self._get_conn()
        try:
            existing = conn.execute(
                "SELECT id FROM record_requests WHERE id = ? AND user_id = ?",
                (request_id, user_id),
            ).fetchone()
            if not existing:
                return None
            updates = {k: v for k, v in kwargs.items() if k in _REQUEST_COLUMNS}
            if "record_types" in updates:
                updates["record_types"] = json.dumps(updates["record_types"] or [])
            if updates:
                set_clause = ", ".join(f"{k} = ?" for k in updates)
                conn.execute(
                    f"UPDATE record_requests SET {set_clause}, updated_at = ? WHERE id = ?",
                    list(updates.values()) + [_now(), request_id],
                )
                conn.commit()
            row = conn.execute(
                "SELECT * FROM record_requests WHERE id = ?", (request_id,)
            ).fetchone()
            return _decode_request(row)
        finally:
            conn.close()

    def delete_request(self, user_id: str, request_id: str) -> bool:
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                "DELETE FROM record_requests WHERE id = ? AND user_id = ?",
                (request_id, user_id),
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def list_request_status_rows(self, user_id: str) -> list[dict[str, Any]]:
        """Return status and timing columns of every request, for statistics."""
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT status, created_at, completed_at FROM record_requests WHERE user_id = ?",
                (user_id,),
            ).fetchall()
            return [dict(row) for row in rows]
        finally:
            conn.close()

    def add_request_event(
        self,
        request_id: str,
        event_type: str,
        title: str,
        description: str | None = None,
    ) -> dict[str, Any]:
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                """INSERT INTO request_events (request_id, event_type, title, description, created_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (request_id, event_type, title, description, _now()),
            )
            conn.commit()
            row = conn.execute(
                "SELECT * FROM request_events WHERE id = ?", (cursor.lastrowid,)
            ).fetchone()
            return dict(row)
        finally:
            conn.close()

    def list_request_events(self, request_id: str) -> list[dict[str, Any]]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM request_events WHERE request_id = ? ORDER BY id ASC",
                (request_id,),
            ).fetchall()
            return [dict(row) for row in rows]
        finally:
            conn.close()

    def add_request_document(
        self,
        request_id: str,
        filename: str,
        stored_path: str,
        size: int,
        content_type: str | None = None,
    ) -> dict[str, Any]:
        conn = self._get_conn()
        try:
            document_id = _new_id()
            conn.execute(
                """INSERT INTO request_documents (id, request_id, filename, stored_path, content_type, size, uploaded_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (document_id, request_id, filename, stored_path, content_type, size, _now()),
            )
            conn.commit()
            row = conn.execute(
                "SELECT * FROM request_documents WHERE id = ?", (document_id,)
            ).fetchone()
            return dict(row)
        finally:
            conn.close()

    def list_request_documents(self, request_id: str) -> list[dict[str, Any]]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM request_documents WHERE request_id = ? ORDER BY uploaded_at ASC, rowid ASC",
                (request_id,),
            ).fetchall()
            return [dict(row) for row in rows]
        finally:
            conn.close()

    # --- Alerts ---

    def create_alert(
        self,
        user_id: str,
        title: str,
        alert_type: str = "health",
        severity: str = "medium",
        message: str | None = None,
        data: dict[str, Any] | None = None,
        expires_at: str | None = None,
    ) -> dict[str, Any]:
        conn = self._get_conn()
        try:
            alert_id = _new_id()
            now = _now()
            conn.execute(
                """INSERT INTO alerts (id, user_id, alert_type, severity, title, message, data, status, expires_at, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, 'active', ?, ?, ?)""",
                (alert_id, user_id, alert_type, severity, title, message,
                 json.dumps(data or {}), expires_at, now, now),
            )
            conn.commit()
            row = conn.execute("SELECT * FROM alerts WHERE id = ?", (alert_id,)).fetchone()
            return _decode_alert(row)
        finally:
            conn.close()

    def list_alerts(
        self,
        user_id: str,
        severity: str | None = None,
        status: str | None = None,
        search: str | None = None,
        include_expired: bool = False,
    ) -> list[dict[str, Any]]:
        """Return alerts ordered by severity (most urgent first), then newest."""
        conn = self._get_conn()
        try:
            conditions = ["user_id = ?"]
            params: list[Any] = [user_id]
            if severity:
                conditions.append("severity = ?")
                params.append(severity)
            if status:
                conditions.append("status = ?")
                params.append(status)
            if search:
                like = _like(search)
                conditions.append("(title LIKE ? ESCAPE '\\' OR message LIKE ? ESCAPE '\\')")
                params.extend([like, like])
            if not include_expired:
                conditions.append("(expires_at IS NULL OR expires_at > ?)")
                params.append(_now())
            rows = conn.execute(
                f"""SELECT * FROM alerts WHERE {' AND '.join(conditions)}
                    ORDER BY {_SEVERITY_ORDER}, created_at DESC, rowid DESC""",
                params,
            ).fetchall()
            return [_decode_alert(row) for row in rows]
        finally:
            conn.close()

    def get_alert(self, user_id: str, alert_id: str) -> dict[str, Any] | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM alerts WHERE id = ? AND user_id = ?", (alert_id, user_id)
            ).fetchone()
            return _decode_alert(row) if row else None
        finally:
            conn.close()

    def update_alert(self, user_id: str, alert_id: str, **kwargs: Any) -> dict[str, Any] | None:
        conn = self._get_conn()
        try:
            existing = conn.execute(
                "SELECT id FROM alerts WHERE id = ? AND user_id = ?", (alert_id, user_id)
            ).fetchone()
            if not existing:
                return None
            updates = {k: v for k, v in kwargs.items() if k in _ALERT_COLUMNS}
            if "data" in updates:
                updates["data"] = json.dumps(updates["data"] or {})
            if updates:
                set_clause = ", ".join(f"{k} = ?" for k in updates)
                conn.execute(
                    f"UPDATE alerts SET {set_clause}, updated_at = ? WHERE id = ?",
                    list(updates.values()) + [_now(), alert_id],
                )
                conn.commit()
            row = conn.execute("SELECT * FROM alerts WHERE id = ?", (alert_id,)).fetchone()
            return _decode_alert(row)
        finally:
            conn.close()

    def delete_alert(self, user_id: str, alert_id: str) -> bool:
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                "DELETE FROM alerts WHERE id = ? AND user_id = ?", (alert_id, user_id)
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def count_active_alerts(self, user_id: str) -> int:
        conn = self._get_conn()
        try:
            row = conn.execute(
                """SELECT COUNT(*) as cnt FROM alerts
                   WHERE user_id = ? AND status = 'active'
                     AND (expires_at IS NULL OR expires_at > ?)""",
                (user_id, _now()),
            ).fetchone()
            return row["cnt"]
        finally:
            conn.close()

    # --- PHI access log ---

    def log_phi_access(
        self,
        user_id: str,
        action: str,
        resource_type: str,
        resource_id: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """INSERT INTO phi_access_log
                   (user_id, action, resource_type, resource_id, ip_address, user_agent)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (user_id, action, resource_type, resource_id, ip_address, user_agent),
            )
            conn.commit()
        finally:
            conn.close()

    def list_phi_access(self, user_id: str, limit: int = 100) -> list[dict[str, Any]]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """SELECT * FROM phi_access_log WHERE user_id = ?
                   ORDER BY id DESC LIMIT ?""",
                (user_id, limit),
            ).fetchall()
            return [dict(row) for row in rows]
        finally:
            conn.close()

    # --- Export ---

    def export_user_data(self, user_id: str) -> dict[str, Any]:
        """Return every row the user owns, grouped by table."""
        export: dict[str, Any] = {
            "settings": self.get_all_settings(user_id),
        }
        for category in _RECORD_COLUMNS:
            export[category] = self.list_records(category, user_id)
        export["providers"] = self.list_providers(user_id)
        export["facilities"] = self.list_facilities(user_id)
        requests, _ = self.list_requests(user_id, offset=0, limit=100000)
        for req in requests:
            req["timeline"] = self.list_request_events(req["id"])
            req["documents"] = [
                {k: v for k, v in doc.items() if k != "stored_path"}
                for doc in self.list_request_documents(req["id"])
            ]
        export["record_requests"] = requests
        export["alerts"] = self.list_alerts(user_id, include_expired=True)
        return export


_db_instance: Database | None = None


def get_db() -> Database:
    """Return the module-level Database singleton."""
    global _db_instance
    if _db_instance is None:
        _db_instance = Database()
    return _db_instance
