"""
SQLite repositories backing conversation history and agent memory.

Every repository is keyed by agent id and enforces its per-agent row cap by
evicting the oldest row when inserting at capacity.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from .errors import StorageError
from .models import (
    BookPage,
    Contact,
    ConversationTurn,
    LocationMemory,
    MailMessage,
    Position,
    Role,
)


class Database:
    """
    Owns the SQLite file and its schema.

    Connections are opened per operation; the context manager commits on
    success and rolls back on any error.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database connections with transaction support."""
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=10.0)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open database {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS conversations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    agent_id TEXT NOT NULL,
                    role TEXT NOT NULL,
                    content TEXT NOT NULL,
                    timestamp INTEGER NOT NULL,
                    seq INTEGER NOT NULL
                )
            """)
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_conversation_agent ON conversations(agent_id, seq)"
            )
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS contacts (
                    agent_id TEXT NOT NULL,
                    name_key TEXT NOT NULL,
                    contact_name TEXT NOT NULL,
                    contact_id TEXT,
                    relationship TEXT NOT NULL,
                    notes TEXT NOT NULL,
                    enmity_level REAL NOT NULL,
                    friendship_level REAL NOT NULL,
                    last_seen INTEGER NOT NULL,
                    PRIMARY KEY (agent_id, name_key)
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS locations (
                    agent_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    x INTEGER NOT NULL,
                    y INTEGER NOT NULL,
                    z INTEGER NOT NULL,
                    description TEXT NOT NULL,
                    timestamp INTEGER NOT NULL,
                    PRIMARY KEY (agent_id, name)
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS private_pages (
                    agent_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    content TEXT NOT NULL,
                    author_name TEXT NOT NULL,
                    timestamp INTEGER NOT NULL,
                    PRIMARY KEY (agent_id, title)
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS shared_pages (
                    title TEXT PRIMARY KEY,
                    content TEXT NOT NULL,
                    author_id TEXT NOT NULL,
                    author_name TEXT NOT NULL,
                    timestamp INTEGER NOT NULL
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS mail (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    recipient_id TEXT NOT NULL,
                    sender_id TEXT NOT NULL,
                    sender_name TEXT NOT NULL,
                    subject TEXT NOT NULL,
                    content TEXT NOT NULL,
                    timestamp INTEGER NOT NULL,
                    read INTEGER NOT NULL DEFAULT 0
                )
            """)
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_mail_recipient ON mail(recipient_id, read)"
            )


class ConversationRepository:
    """Durable, ordered per-agent turn log."""

    def __init__(self, database: Database):
        self.database = database

    def append(self, turn: ConversationTurn) -> ConversationTurn:
        """Persist one turn and return it with its id and sequence number."""
        with self.database.connection() as conn:
            if turn.role == Role.SYSTEM:
                seq = 0
            else:
                row = conn.execute(
                    "SELECT COALESCE(MAX(seq), 0) FROM conversations WHERE agent_id = ?",
                    (turn.agent_id,),
                ).fetchone()
                seq = row[0] + 1
            cursor = conn.execute(
                "INSERT INTO conversations (agent_id, role, content, timestamp, seq) "
                "VALUES (?, ?, ?, ?, ?)",
                (turn.agent_id, turn.role.value, turn.content, turn.timestamp, seq),
            )
            return turn.model_copy(update={"id": cursor.lastrowid, "seq": seq})

    def select_window(self, agent_id: str, limit: int) -> list[ConversationTurn]:
        """The most recent ``limit`` non-system turns, oldest first."""
        with self.database.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM conversations WHERE agent_id = ? AND role != 'system' "
                "ORDER BY seq DESC LIMIT ?",
                (agent_id, limit),
            ).fetchall()
        return [self._row_to_turn(row) for row in reversed(rows)]

    def select_all(self, agent_id: str) -> list[ConversationTurn]:
        """Every non-system turn, oldest first."""
        with self.database.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM conversations WHERE agent_id = ? AND role != 'system' "
                "ORDER BY seq ASC",
                (agent_id,),
            ).fetchall()
        return [self._row_to_turn(row) for row in rows]

    def last_turn(self, agent_id: str) -> Optional[ConversationTurn]:
        turns = self.select_window(agent_id, 1)
        return turns[0] if turns else None

    def replace(self, ids: list[int], summary: ConversationTurn) -> ConversationTurn:
        """Delete ``ids`` and insert ``summary`` at ``summary.seq`` atomically."""
        if summary.seq is None:
            raise ValueError("summary turn must carry the sequence number it replaces")
        with self.database.connection() as conn:
            conn.executemany(
                "DELETE FROM conversations WHERE id = ?", [(turn_id,) for turn_id in ids]
            )
            cursor = conn.execute(
                "INSERT INTO conversations (agent_id, role, content, timestamp, seq) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    summary.agent_id,
                    summary.role.value,
                    summary.content,
                    summary.timestamp,
                    summary.seq,
                ),
            )
            return summary.model_copy(update={"id": cursor.lastrowid})

    def get_system_turn(self, agent_id: str) -> Optional[ConversationTurn]:
        with self.database.connection() as conn:
            row = conn.execute(
                "SELECT * FROM conversations WHERE agent_id = ? AND role = 'system' "
                "ORDER BY id DESC LIMIT 1",
                (agent_id,),
            ).fetchone()
        return self._row_to_turn(row) if row else None

    def replace_system_turn(self, agent_id: str, content: str) -> ConversationTurn:
        """Keep at most one system turn per agent, holding ``content``."""
        with self.database.connection() as conn:
            conn.execute(
                "DELETE FROM conversations WHERE agent_id = ? AND role = 'system'",
                (agent_id,),
            )
            cursor = conn.execute(
                "INSERT INTO conversations (agent_id, role, content, timestamp, seq) "
                "VALUES (?, 'system', ?, 0, 0)",
                (agent_id, content),
            )
        return ConversationTurn(
            agent_id=agent_id,
            role=Role.SYSTEM,
            content=content,
            timestamp=0,
            id=cursor.lastrowid,
            seq=0,
        )

    def delete_by_agent(self, agent_id: str) -> None:
        with self.database.connection() as conn:
            conn.execute("DELETE FROM conversations WHERE agent_id = ?", (agent_id,))

    @staticmethod
    def _row_to_turn(row: sqlite3.Row) -> ConversationTurn:
        return ConversationTurn(
            id=row["id"],
            agent_id=row["agent_id"],
            role=Role(row["role"]),
            content=row["content"],
            timestamp=row["timestamp"],
            seq=row["seq"],
        )


class ContactRepository:
    """Contacts remembered by each agent, keyed case-insensitively by name."""

    def __init__(self, database: Database):
        self.database = database

    def upsert(self, contact: Contact, max_contacts: int) -> None:
        key = contact.contact_name.lower()
        with self.database.connection() as conn:
            exists = conn.execute(
                "SELECT 1 FROM contacts WHERE agent_id = ? AND name_key = ?",
                (contact.agent_id, key),
            ).fetchone()
            if not exists:
                _evict_oldest(conn, "contacts", "last_seen", contact.agent_id, max_contacts)
            conn.execute(
                "INSERT OR REPLACE INTO contacts (agent_id, name_key, contact_name, contact_id, "
                "relationship, notes, enmity_level, friendship_level, last_seen) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    contact.agent_id,
                    key,
                    contact.contact_name,
                    contact.contact_id,
                    contact.relationship,
                    contact.notes,
                    contact.enmity_level,
                    contact.friendship_level,
                    contact.last_seen,
                ),
            )

    def get(self, agent_id: str, name: str) -> Optional[Contact]:
        with self.database.connection() as conn:
            row = conn.execute(
                "SELECT * FROM contacts WHERE agent_id = ? AND name_key = ?",
                (agent_id, name.lower()),
            ).fetchone()
        return self._row_to_contact(row) if row else None

    def select_by_agent(self, agent_id: str, limit: int) -> list[Contact]:
        """Most recently seen first."""
        with self.database.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM contacts WHERE agent_id = ? ORDER BY last_seen DESC LIMIT ?",
                (agent_id, limit),
            ).fetchall()
        return [self._row_to_contact(row) for row in rows]

    def delete(self, agent_id: str, name: str) -> bool:
        with self.database.connection() as conn:
            cursor = conn.execute(
                "DELETE FROM contacts WHERE agent_id = ? AND name_key = ?",
                (agent_id, name.lower()),
            )
            return cursor.rowcount > 0

    def delete_by_agent(self, agent_id: str) -> None:
        with self.database.connection() as conn:
            conn.execute("DELETE FROM contacts WHERE agent_id = ?", (agent_id,))

    @staticmethod
    def _row_to_contact(row: sqlite3.Row) -> Contact:
        return Contact(
            agent_id=row["agent_id"],
            contact_name=row["contact_name"],
            contact_id=row["contact_id"],
            relationship=row["relationship"],
            notes=row["notes"],
            enmity_level=row["enmity_level"],
            friendship_level=row["friendship_level"],
            last_seen=row["last_seen"],
        )


class LocationRepository:
    """Named locations remembered by each agent."""

    def __init__(self, database: Database):
        self.database = database

    def upsert(self, location: LocationMemory, max_locations: int) -> None:
        with self.database.connection() as conn:
            exists = conn.execute(
                "SELECT 1 FROM locations WHERE agent_id = ? AND name = ?",
                (location.agent_id, location.name),
            ).fetchone()
            if not exists:
                _evict_oldest(conn, "locations", "timestamp", location.agent_id, max_locations)
            conn.execute(
                "INSERT OR REPLACE INTO locations (agent_id, name, x, y, z, description, timestamp) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    location.agent_id,
                    location.name,
                    location.position.x,
                    location.position.y,
                    location.position.z,
                    location.description,
                    location.timestamp,
                ),
            )

    def get(self, agent_id: str, name: str) -> Optional[LocationMemory]:
        with self.database.connection() as conn:
            row = conn.execute(
                "SELECT * FROM locations WHERE agent_id = ? AND name = ?",
                (agent_id, name),
            ).fetchone()
        return self._row_to_location(row) if row else None

    def select_by_agent(self, agent_id: str, limit: int) -> list[LocationMemory]:
        with self.database.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM locations WHERE agent_id = ? ORDER BY timestamp DESC LIMIT ?",
                (agent_id, limit),
            ).fetchall()
        return [self._row_to_location(row) for row in rows]

    def delete(self, agent_id: str, name: str) -> bool:
        with self.database.connection() as conn:
            cursor = conn.execute(
                "DELETE FROM locations WHERE agent_id = ? AND name = ?", (agent_id, name)
            )
            return cursor.rowcount > 0

    def delete_by_agent(self, agent_id: str) -> None:
        with self.database.connection() as conn:
            conn.execute("DELETE FROM locations WHERE agent_id = ?", (agent_id,))

    @staticmethod
    def _row_to_location(row: sqlite3.Row) -> LocationMemory:
        return LocationMemory(
            agent_id=row["agent_id"],
            name=row["name"],
            position=Position(x=row["x"], y=row["y"], z=row["z"]),
            description=row["description"],
            timestamp=row["timestamp"],
        )


class PrivateBookRepository:
    """Per-agent private book pages."""

    def __init__(self, database: Database):
        self.database = database

    def upsert(self, agent_id: str, page: BookPage, max_pages: int) -> None:
        with self.database.connection() as conn:
            exists = conn.execute(
                "SELECT 1 FROM private_pages WHERE agent_id = ? AND title = ?",
                (agent_id, page.title),
            ).fetchone()
            if not exists:
                _evict_oldest(conn, "private_pages", "timestamp", agent_id, max_pages)
            conn.execute(
                "INSERT OR REPLACE INTO private_pages (agent_id, title, content, author_name, timestamp) "
                "VALUES (?, ?, ?, ?, ?)",
                (agent_id, page.title, page.content, page.author_name, page.timestamp),
            )

    def select_by_agent(self, agent_id: str, limit: int) -> list[BookPage]:
        with self.database.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM private_pages WHERE agent_id = ? ORDER BY timestamp DESC LIMIT ?",
                (agent_id, limit),
            ).fetchall()
        return [
            BookPage(
                title=row["title"],
                content=row["content"],
                author_id=row["agent_id"],
                author_name=row["author_name"],
                timestamp=row["timestamp"],
            )
            for row in rows
        ]

    def delete(self, agent_id: str, title: str) -> bool:
        with self.database.connection() as conn:
            cursor = conn.execute(
                "DELETE FROM private_pages WHERE agent_id = ? AND title = ?", (agent_id, title)
            )
            return cursor.rowcount > 0

    def delete_by_agent(self, agent_id: str) -> None:
        with self.database.connection() as conn:
            conn.execute("DELETE FROM private_pages WHERE agent_id = ?", (agent_id,))


class SharedBookRepository:
    """World-wide shared book; only a page's author may remove it."""

    def __init__(self, database: Database):
        self.database = database

    def upsert(self, page: BookPage, max_pages: int) -> None:
        with self.database.connection() as conn:
            exists = conn.execute(
                "SELECT 1 FROM shared_pages WHERE title = ?", (page.title,)
            ).fetchone()
            if not exists:
                count = conn.execute("SELECT COUNT(*) FROM shared_pages").fetchone()[0]
                if count >= max_pages:
                    conn.execute(
                        "DELETE FROM shared_pages WHERE title = "
                        "(SELECT title FROM shared_pages ORDER BY timestamp ASC LIMIT 1)"
                    )
            conn.execute(
                "INSERT OR REPLACE INTO shared_pages (title, content, author_id, author_name, timestamp) "
                "VALUES (?, ?, ?, ?, ?)",
                (page.title, page.content, page.author_id, page.author_name, page.timestamp),
            )

    def select_all(self, limit: int) -> list[BookPage]:
        with self.database.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM shared_pages ORDER BY timestamp DESC LIMIT ?", (limit,)
            ).fetchall()
        return [
            BookPage(
                title=row["title"],
                content=row["content"],
                author_id=row["author_id"],
                author_name=row["author_name"],
                timestamp=row["timestamp"],
            )
            for row in rows
        ]

    def delete(self, title: str, author_id: str) -> bool:
        with self.database.connection() as conn:
            cursor = conn.execute(
                "DELETE FROM shared_pages WHERE title = ? AND author_id = ?", (title, author_id)
            )
            return cursor.rowcount > 0


class MailRepository:
    """Point-to-point mail between agents."""

    def __init__(self, database: Database):
        self.database = database

    def insert(self, message: MailMessage, max_messages: int) -> MailMessage:
        """Store a message, evicting the oldest read (else oldest) one at capacity."""
        with self.database.connection() as conn:
            count = conn.execute(
                "SELECT COUNT(*) FROM mail WHERE recipient_id = ?", (message.recipient_id,)
            ).fetchone()[0]
            if count >= max_messages:
                victim = conn.execute(
                    "SELECT id FROM mail WHERE recipient_id = ? "
                    "ORDER BY read DESC, timestamp ASC, id ASC LIMIT 1",
                    (message.recipient_id,),
                ).fetchone()
                if victim:
                    conn.execute("DELETE FROM mail WHERE id = ?", (victim["id"],))
            cursor = conn.execute(
                "INSERT INTO mail (recipient_id, sender_id, sender_name, subject, content, timestamp, read) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    message.recipient_id,
                    message.sender_id,
                    message.sender_name,
                    message.subject,
                    message.content,
                    message.timestamp,
                    int(message.read),
                ),
            )
            return message.model_copy(update={"id": cursor.lastrowid})

    def select_by_recipient(
        self, recipient_id: str, limit: int = 50, unread_only: bool = False
    ) -> list[MailMessage]:
        """Newest first."""
        sql = "SELECT * FROM mail WHERE recipient_id = ?"
        if unread_only:
            sql += " AND read = 0"
        sql += " ORDER BY timestamp DESC, id DESC LIMIT ?"
        with self.database.connection() as conn:
            rows = conn.execute(sql, (recipient_id, limit)).fetchall()
        return [
            MailMessage(
                id=row["id"],
                recipient_id=row["recipient_id"],
                sender_id=row["sender_id"],
                sender_name=row["sender_name"],
                subject=row["subject"],
                content=row["content"],
                timestamp=row["timestamp"],
                read=bool(row["read"]),
            )
            for row in rows
        ]

    def mark_as_read(self, message_ids: list[int]) -> None:
        with self.database.connection() as conn:
            conn.executemany(
                "UPDATE mail SET read = 1 WHERE id = ?", [(mid,) for mid in message_ids]
            )

    def delete_by_agent(self, agent_id: str) -> None:
        with self.database.connection() as conn:
            conn.execute(
                "DELETE FROM mail WHERE sender_id = ? OR recipient_id = ?", (agent_id, agent_id)
            )


def _evict_oldest(
    conn: sqlite3.Connection, table: str, order_column: str, agent_id: str, capacity: int
) -> None:
    """Drop the oldest rows of ``agent_id`` so one more insert stays within ``capacity``."""
    count = conn.execute(
        f"SELECT COUNT(*) FROM {table} WHERE agent_id = ?", (agent_id,)
    ).fetchone()[0]
    excess = count - capacity + 1
    if excess <= 0:
        return
    conn.execute(
        f"DELETE FROM {table} WHERE rowid IN ("
        f"SELECT rowid FROM {table} WHERE agent_id = ? ORDER BY {order_column} ASC LIMIT ?)",
        (agent_id, excess),
    )


__all__ = [
    "ContactRepository",
    "ConversationRepository",
    "Database",
    "LocationRepository",
    "MailRepository",
    "PrivateBookRepository",
    "SharedBookRepository",
]
