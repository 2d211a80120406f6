# manages connection to db, provides helper methods internal to db package
import asyncio
import os.path
import sqlite3
from contextlib import asynccontextmanager
from sqlite3 import Row
from typing import AsyncIterator, Optional

import aiosqlite

from utils.errors import ConstraintViolation, StorageUnavailable
from utils.logger import get_logger

_logger = get_logger(__name__)

DB_PATH = os.getenv("LEVELUP_DB_PATH", "data/levelup.sqlite")
SCHEMA_SCRIPT = os.path.join(os.path.dirname(__file__), "schema.sql")

# bump on any schema change; a mismatch wipes and recreates every table
SCHEMA_VERSION = 3

_initialized = False
_init_lock = asyncio.Lock()


def reset(path: Optional[str] = None) -> None:
    """Point the module at another database file and force re-initialization."""
    global DB_PATH, _initialized, _init_lock
    if path is not None:
        DB_PATH = path
    _initialized = False
    _init_lock = asyncio.Lock()


async def _schema_version(conn: aiosqlite.Connection) -> int:
    cur = await conn.execute("PRAGMA user_version;")
    row = await cur.fetchone()
    await cur.close()
    return int(row[0])


async def _drop_all(conn: aiosqlite.Connection) -> None:
    cur = await conn.execute(
        """
        SELECT type, name
        FROM sqlite_master
        WHERE type IN ('view', 'table')
          AND name NOT LIKE 'sqlite_%'
        ORDER BY type = 'table';
        """
    )
    rows = await cur.fetchall()
    await cur.close()
    # views first, then tables; FK checks off so drop order between tables is free
    await conn.execute("PRAGMA foreign_keys = OFF;")
    for kind, name in rows:
        await conn.execute(f'DROP {kind.upper()} IF EXISTS "{name}";')
    await conn.commit()
    await conn.execute("PRAGMA foreign_keys = ON;")


async def _init_db(conn: aiosqlite.Connection) -> None:
    version = await _schema_version(conn)
    if version == SCHEMA_VERSION:
        return
    if version != 0:
        _logger.warning(
            f"Schema version {version} != {SCHEMA_VERSION}, discarding local cache."
        )
    await _drop_all(conn)
    _logger.info(f"Initializing database with script {SCHEMA_SCRIPT}...")
    with open(SCHEMA_SCRIPT, "r") as f:
        await conn.executescript(f.read())
    await conn.execute(f"PRAGMA user_version = {int(SCHEMA_VERSION)};")
    await conn.commit()


async def _open() -> aiosqlite.Connection:
    db_dir = os.path.dirname(DB_PATH)
    try:
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)
        conn = await aiosqlite.connect(DB_PATH)
    except (OSError, sqlite3.Error) as e:
        raise StorageUnavailable(f"Cannot open {DB_PATH}: {e}") from e
    conn.row_factory = Row
    await conn.execute("PRAGMA foreign_keys = ON;")
    return conn


@asynccontextmanager
async def connect() -> AsyncIterator[aiosqlite.Connection]:
    """Async context manager yielding an aiosqlite connection with FK enabled.

    Ensures the schema exists (and matches SCHEMA_VERSION) on first use.
    sqlite errors raised inside the block are translated:
    IntegrityError -> ConstraintViolation, anything else -> StorageUnavailable.
    Uncommitted changes are discarded when the connection closes.
    """
    global _initialized
    conn = await _open()
    try:
        if not _initialized:
            async with _init_lock:
                if not _initialized:
                    await _init_db(conn)
                    _initialized = True
        yield conn
    except sqlite3.IntegrityError as e:
        raise ConstraintViolation(str(e)) from e
    except sqlite3.Error as e:
        _logger.error(f"Database error: {e}")
        raise StorageUnavailable(str(e)) from e
    finally:
        await conn.close()


@asynccontextmanager
async def transaction() -> AsyncIterator[aiosqlite.Connection]:
    """
    Like connect(), but inside BEGIN IMMEDIATE: the write lock is taken up
    front (waiting on the busy timeout) and the block commits as one unit.
    """
    async with connect() as conn:
        await conn.execute("BEGIN IMMEDIATE;")
        yield conn
        await conn.commit()
