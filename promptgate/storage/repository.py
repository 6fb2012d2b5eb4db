"""
Repository pattern for data access.

SQLite-backed collaborators for the orchestrator: the append-only usage
ledger, quota and key storage, and the language-model catalog. Async
methods run the blocking sqlite calls in a worker thread.
"""

import asyncio
import json
from datetime import datetime
from typing import Dict, List, Optional

from promptgate.core.errors import ConfigNotFound, CredentialNotFound
from promptgate.core.quota import ResolvedCredential

from .db import DEFAULT_DB_PATH, get_connection
from .models import ApiKey, LanguageModel, UsageRecord

USAGE_COLUMNS = (
    "timestamp", "source", "log_type", "log_level", "org_id", "project_id",
    "prompt_id", "vendor", "model", "tokens_in", "tokens_out", "tokens_sum",
    "cost", "response_ms", "input", "output", "user_id", "memory_key",
    "description", "testcase_id", "api_key_id", "attempt_id",
)


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create all tables if they don't exist.

    ``usage_record`` is an append-only ledger: no UPDATE or DELETE should
    ever be performed on it.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS usage_record (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT NOT NULL,
                source TEXT NOT NULL,
                log_type TEXT NOT NULL,
                log_level TEXT NOT NULL,
                org_id INTEGER NOT NULL,
                project_id INTEGER,
                prompt_id INTEGER NOT NULL,
                vendor TEXT NOT NULL,
                model TEXT NOT NULL,
                tokens_in INTEGER NOT NULL,
                tokens_out INTEGER NOT NULL,
                tokens_sum INTEGER NOT NULL,
                cost REAL NOT NULL,
                response_ms INTEGER NOT NULL,
                input TEXT NOT NULL,
                output TEXT NOT NULL,
                user_id INTEGER,
                memory_key TEXT,
                description TEXT,
                testcase_id INTEGER,
                api_key_id INTEGER,
                attempt_id TEXT
            );
            CREATE TABLE IF NOT EXISTS quota (
                org_id INTEGER PRIMARY KEY,
                balance REAL NOT NULL
            );
            CREATE TABLE IF NOT EXISTS quota_charge (
                attempt_id TEXT PRIMARY KEY,
                org_id INTEGER NOT NULL,
                amount REAL NOT NULL,
                charged_at TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS organization_api_key (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                org_id INTEGER NOT NULL,
                vendor TEXT NOT NULL,
                key TEXT NOT NULL,
                base_url TEXT
            );
            CREATE TABLE IF NOT EXISTS language_model (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                vendor TEXT NOT NULL,
                prompt_price REAL NOT NULL DEFAULT 0,
                completion_price REAL NOT NULL DEFAULT 0,
                api_key_id INTEGER REFERENCES organization_api_key(id),
                parameters_config TEXT
            );
        """)
        conn.commit()
    finally:
        conn.close()


def insert_usage_record(record: UsageRecord, db_path: str = DEFAULT_DB_PATH) -> None:
    """Insert a single usage record into the append-only ledger.

    Args:
        record: The usage record to store
        db_path: Path to SQLite database file
    """
    values = [getattr(record, column) for column in USAGE_COLUMNS]
    values[0] = record.timestamp.isoformat()

    conn = get_connection(db_path)
    try:
        conn.execute(
            f"INSERT INTO usage_record ({', '.join(USAGE_COLUMNS)}) "
            f"VALUES ({', '.join('?' for _ in USAGE_COLUMNS)})",
            values
        )
        conn.commit()
    finally:
        conn.close()


def fetch_recent_usage_records(
    org_id: Optional[int] = None,
    log_type: Optional[str] = None,
    limit: int = 100,
    db_path: str = DEFAULT_DB_PATH
) -> List[UsageRecord]:
    """Fetch recent usage records, optionally filtered.

    Returns records in reverse insertion order (newest first).

    Args:
        org_id: Optional filter for a specific organization
        log_type: Optional filter for success or error records
        limit: Maximum number of records to return
        db_path: Path to SQLite database file

    Returns:
        List of usage records, newest first
    """
    conn = get_connection(db_path)
    try:
        query = f"SELECT {', '.join(USAGE_COLUMNS)} FROM usage_record"
        params: list = []
        conditions = []
        if org_id is not None:
            conditions.append("org_id = ?")
            params.append(org_id)
        if log_type:
            conditions.append("log_type = ?")
            params.append(log_type)
        if conditions:
            query += " WHERE " + " AND ".join(conditions)

        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)

        records = []
        for row in conn.execute(query, params).fetchall():
            data = dict(zip(USAGE_COLUMNS, row))
            data["timestamp"] = datetime.fromisoformat(data["timestamp"])
            records.append(UsageRecord(**data))
        return records
    finally:
        conn.close()


class SqliteUsageRecorder:
    """Usage recorder writing to the SQLite ledger."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    async def append(self, record: UsageRecord) -> None:
        await asyncio.to_thread(insert_usage_record, record, self.db_path)


class SqliteBillingStore:
    """Quota balances and organization keys.

    Organization-funded runs use the platform keys passed in
    ``platform_keys`` (vendor tag -> key) while the organization has a
    positive balance; otherwise the organization's own key for the vendor
    is used and nothing is charged.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH, platform_keys: Optional[Dict[str, str]] = None):
        self.db_path = db_path
        self.platform_keys = {k: v for k, v in (platform_keys or {}).items() if v}

    def set_quota(self, org_id: int, balance: float) -> None:
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                "INSERT INTO quota (org_id, balance) VALUES (?, ?) "
                "ON CONFLICT(org_id) DO UPDATE SET balance = excluded.balance",
                (org_id, balance)
            )
            conn.commit()
        finally:
            conn.close()

    def add_api_key(self, org_id: int, vendor: str, key: str, base_url: Optional[str] = None) -> int:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "INSERT INTO organization_api_key (org_id, vendor, key, base_url) VALUES (?, ?, ?, ?)",
                (org_id, vendor, key, base_url)
            )
            conn.commit()
            return cursor.lastrowid
        finally:
            conn.close()

    def _get_quota(self, org_id: int) -> Optional[float]:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute("SELECT balance FROM quota WHERE org_id = ?", (org_id,)).fetchone()
            return row[0] if row else None
        finally:
            conn.close()

    def _find_api_key(self, org_id: int, key_id: Optional[int] = None, vendor: Optional[str] = None) -> Optional[ApiKey]:
        conn = get_connection(self.db_path)
        try:
            if key_id is not None:
                row = conn.execute(
                    "SELECT id, org_id, vendor, key, base_url FROM organization_api_key "
                    "WHERE org_id = ? AND id = ?",
                    (org_id, key_id)
                ).fetchone()
            else:
                row = conn.execute(
                    "SELECT id, org_id, vendor, key, base_url FROM organization_api_key "
                    "WHERE org_id = ? AND vendor = ? ORDER BY id LIMIT 1",
                    (org_id, vendor)
                ).fetchone()
            return ApiKey(*row) if row else None
        finally:
            conn.close()

    def _charge(self, org_id: int, amount: float, attempt_id: Optional[str]) -> None:
        conn = get_connection(self.db_path)
        try:
            conn.execute("BEGIN IMMEDIATE")
            if attempt_id is not None:
                cursor = conn.execute(
                    "INSERT OR IGNORE INTO quota_charge (attempt_id, org_id, amount, charged_at) "
                    "VALUES (?, ?, ?, ?)",
                    (attempt_id, org_id, amount, datetime.now().isoformat())
                )
                if cursor.rowcount == 0:
                    # Attempt already charged
                    conn.rollback()
                    return
            cursor = conn.execute(
                "UPDATE quota SET balance = balance - ? WHERE org_id = ?", (amount, org_id)
            )
            if cursor.rowcount == 0:
                raise ConfigNotFound("Quota not found")
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    async def get_quota(self, org_id: int) -> Optional[float]:
        return await asyncio.to_thread(self._get_quota, org_id)

    async def get_api_key_by_id(self, org_id: int, key_id: int) -> Optional[ApiKey]:
        return await asyncio.to_thread(self._find_api_key, org_id, key_id)

    async def get_api_key_by_quota(self, balance: float, org_id: int, vendor: str) -> ResolvedCredential:
        platform_key = self.platform_keys.get(vendor)
        if balance > 0 and platform_key:
            return ResolvedCredential(api_key=platform_key, chargeable=True)

        own_key = await asyncio.to_thread(self._find_api_key, org_id, None, vendor)
        if own_key is not None:
            return ResolvedCredential(api_key=own_key.key, base_url=own_key.base_url, chargeable=False)

        raise CredentialNotFound(f"AI API key not found for {vendor}")

    async def charge_quota(self, org_id: int, amount: float, attempt_id: Optional[str] = None) -> None:
        await asyncio.to_thread(self._charge, org_id, amount, attempt_id)


class SqliteModelCatalog:
    """Language models with their pricing and optional bound key."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def add_model(
        self,
        name: str,
        vendor: str,
        prompt_price: float = 0.0,
        completion_price: float = 0.0,
        api_key_id: Optional[int] = None,
        parameters_config: Optional[dict] = None
    ) -> int:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "INSERT INTO language_model "
                "(name, vendor, prompt_price, completion_price, api_key_id, parameters_config) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    name, vendor, prompt_price, completion_price, api_key_id,
                    json.dumps(parameters_config) if parameters_config is not None else None
                )
            )
            conn.commit()
            return cursor.lastrowid
        finally:
            conn.close()

    def _get_model(self, model_id: int) -> Optional[LanguageModel]:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT id, name, vendor, prompt_price, completion_price, api_key_id, parameters_config "
                "FROM language_model WHERE id = ?",
                (model_id,)
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return LanguageModel(
            id=row[0],
            name=row[1],
            vendor=row[2],
            prompt_price=row[3],
            completion_price=row[4],
            api_key_id=row[5],
            parameters_config=json.loads(row[6]) if row[6] else None
        )

    def _first_model(self) -> Optional[LanguageModel]:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute("SELECT id FROM language_model ORDER BY id LIMIT 1").fetchone()
        finally:
            conn.close()
        return self._get_model(row[0]) if row else None

    async def get_model(self, model_id: int) -> Optional[LanguageModel]:
        return await asyncio.to_thread(self._get_model, model_id)

    async def get_default_model(self) -> Optional[LanguageModel]:
        """Model with id 1, else the first model in the catalog."""
        model = await self.get_model(1)
        if model is None:
            model = await asyncio.to_thread(self._first_model)
        return model
