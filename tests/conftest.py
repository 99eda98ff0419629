# ==============================================================================
# CONFTEST - Pytest Fixtures and Configuration
# ==============================================================================
# Shared fixtures for all tests: an in-memory adapter, a SQLite-backed
# backoffice written to a temp directory, and an HTTP client bound to the app
# ==============================================================================

from __future__ import annotations

import os
import sqlite3
import sys
from pathlib import Path
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set test environment before importing app
os.environ["ENVIRONMENT"] = "development"
os.environ["DEBUG"] = "false"
os.environ["AUDIT_ENABLED"] = "true"
os.environ["HTTP_CHECK_ON_CONNECT"] = "false"
os.environ["HTTP_RETRY_BASE_DELAY"] = "0"
os.environ["HTTP_RETRY_MAX_DELAY"] = "0"

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from backoffice.datasources.adapters.base_adapter import BaseDataSourceAdapter  # noqa: E402
from backoffice.datasources.coercion import Record  # noqa: E402


# ==============================================================================
# IN-MEMORY ADAPTER
# ==============================================================================

class MemoryAdapter(BaseDataSourceAdapter):
    """
    Adapter over plain lists of dicts.

    Lookups render as ``"<table>:<field>"`` and deletes as
    ``"delete:<table>:<field>"``; inserts use ``"insert:<table>"``. Every
    call is recorded so tests can assert on backend traffic.
    """

    kind = "memory"

    def __init__(self, name: str = "main", tables: Optional[Dict[str, List[Record]]] = None) -> None:
        super().__init__(name)
        self.tables: Dict[str, List[Record]] = tables if tables is not None else {}
        self.queries: List[Tuple[str, Optional[Dict[str, Any]]]] = []
        self.mutations: List[Tuple[str, Dict[str, Any]]] = []
        self.fail_lookups: set = set()
        self.fail_deletes: set = set()
        self._next_id = 1000

    async def connect(self) -> None:
        pass

    async def disconnect(self) -> None:
        pass

    async def health_check(self) -> bool:
        return True

    async def execute_query(
        self,
        query: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> List[Record]:
        self.queries.append((query, params))
        if not query:
            return []
        table, _, field = query.partition(":")
        if table in self.fail_lookups:
            raise self._error(f"lookup on {table} failed")
        rows = self.tables.get(table, [])
        if not field:
            return [dict(r) for r in rows]
        value = (params or {}).get("value")
        return [dict(r) for r in rows if r.get(field) == value]

    async def execute_mutation(self, query: str, data: Dict[str, Any]) -> Any:
        self.mutations.append((query, dict(data)))
        if query.startswith("delete:"):
            _, table, field = query.split(":")
            if table in self.fail_deletes:
                raise self._error(f"delete on {table} failed")
            rows = self.tables.get(table, [])
            kept = [r for r in rows if r.get(field) != data["value"]]
            self.tables[table] = kept
            return {"rows_affected": len(rows) - len(kept), "success": True}
        if query.startswith("insert:"):
            table = query.split(":", 1)[1]
            row = dict(data)
            if "id" not in row:
                self._next_id += 1
                row["id"] = self._next_id
            self.tables.setdefault(table, []).append(row)
            return {"inserted_id": row["id"], "success": True}
        return {"success": True}

    def render_lookup(self, collection: str, field: str, value: Any):
        return f"{collection}:{field}", {"value": value}

    def render_delete(self, collection: str, field: str, value: Any):
        return f"delete:{collection}:{field}", {"value": value}


@pytest.fixture
def memory_adapter() -> MemoryAdapter:
    """Empty in-memory adapter named ``main``."""
    return MemoryAdapter("main")


# ==============================================================================
# SQLITE BACKOFFICE FIXTURES
# ==============================================================================

SHOP_SCHEMA = """
CREATE TABLE users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    email TEXT
);
CREATE TABLE posts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER,
    title TEXT
);
INSERT INTO users (name, email) VALUES
    ('Alice', 'alice@example.com'),
    ('Bob', 'bob@example.com'),
    ('Carol', 'carol@example.com');
INSERT INTO posts (user_id, title) VALUES
    (1, 'Hello'),
    (1, 'Again'),
    (2, 'Bob post');
"""

SHOP_BACKOFFICE = """
id: shop
name: Shop Admin
description: Test backoffice
data_sources:
  main:
    type: database
    db_type: sqlite
    connection_string: "sqlite:///{db_path}"
sections:
  - id: users
    name: Users
    table: users
    audit:
      retention_days: 30
    actions:
      - id: list
        name: All users
        type: list
        data_source: main
        query: SELECT id, name, email FROM users ORDER BY id
        config:
          page_size: 2
      - id: by_name
        name: Find user
        type: view
        data_source: main
        query: SELECT id, name, email FROM users WHERE name = :name
      - id: create
        name: New user
        type: form
        data_source: main
        query: INSERT INTO users (name, email) VALUES (:name, :email)
        fields:
          - id: name
            name: Name
            required: true
            validations:
              - rule_type: {{type: min_length, value: 2}}
          - id: email
            name: Email
            field_type: email
            required: true
            validations:
              - rule_type: {{type: email}}
      - id: update
        name: Edit user
        type: form
        data_source: main
        query: UPDATE users SET name = :name WHERE id = :id
        config:
          form_mode: update
        fields:
          - id: name
            name: Name
            required: true
      - id: delete
        name: Delete user
        type: form
        data_source: main
        config:
          form_mode: delete
  - id: posts
    name: Posts
    table: posts
    actions:
      - id: list
        name: All posts
        type: list
        data_source: main
        query: SELECT id, user_id, title FROM posts ORDER BY id
      - id: create
        name: New post
        type: form
        data_source: main
        query: INSERT INTO posts (user_id, title) VALUES (:user_id, :title)
        fields:
          - id: user_id
            name: Author
            field_type: number
            required: true
          - id: title
            name: Title
            required: true
relationships:
  - id: post_author
    from_section: posts
    from_field: user_id
    to_section: users
    relationship_type: many_to_one
  - id: user_posts
    from_section: posts
    from_field: user_id
    to_section: users
    relationship_type: one_to_many
    cascade_delete: true
"""


@pytest.fixture
def shop_files(tmp_path: Path) -> Dict[str, Path]:
    """
    Write a SQLite database and a backoffice schema pointing at it.

    Returns:
        Paths keyed ``db``, ``config``, ``backoffices`` and ``audit``
    """
    db_path = tmp_path / "shop.db"
    conn = sqlite3.connect(db_path)
    conn.executescript(SHOP_SCHEMA)
    conn.commit()
    conn.close()

    backoffices_dir = tmp_path / "backoffices"
    backoffices_dir.mkdir()
    (backoffices_dir / "shop.yaml").write_text(
        SHOP_BACKOFFICE.format(db_path=db_path.as_posix()), encoding="utf-8"
    )

    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        "server:\n  host: 127.0.0.1\n  port: 9000\nsecurity:\n  enabled: false\n  jwt_secret: hidden\n",
        encoding="utf-8",
    )

    return {
        "db": db_path,
        "config": config_path,
        "backoffices": backoffices_dir,
        "audit": tmp_path / "audit",
    }


# ==============================================================================
# HTTP CLIENT FIXTURES
# ==============================================================================

@pytest_asyncio.fixture
async def client(shop_files: Dict[str, Path]) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client with the shop backoffice loaded."""
    # Import app after environment is set
    from backoffice.main import app, initialize_state, shutdown_state

    await initialize_state(
        app,
        config_path=shop_files["config"],
        backoffices_dir=shop_files["backoffices"],
        audit_log_dir=shop_files["audit"],
    )

    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        timeout=30.0,
    ) as async_client:
        yield async_client

    await shutdown_state(app)
