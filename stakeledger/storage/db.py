import sqlite3
import threading
from contextlib import contextmanager
from typing import Optional, Dict, List, Tuple

class StorageDB:
    def __init__(self, db_path: str):
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.cursor = self.conn.cursor()
        self._lock = threading.RLock()
        # Open atomic() blocks; writes inside them are committed by the outermost one
        self._depth = 0
        self._init_db()

    def _init_db(self):
        with self._lock:
            # State table: Key-Value store for accounts, params and token balances
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS state (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            ''')
            # Events table: append-only log for off-chain observers
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS events (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    event_type TEXT,
                    user TEXT,
                    timestamp INTEGER,
                    data TEXT
                )
            ''')
            self.cursor.execute('CREATE INDEX IF NOT EXISTS events_user ON events (user)')
            self.conn.commit()

    @contextmanager
    def atomic(self):
        """
        Groups every write made inside the block into a single commit.

        The connection stays locked to the calling thread until the block
        ends; an exception rolls all of the writes back.
        """
        with self._lock:
            self._depth += 1
            completed = False
            try:
                yield
                completed = True
            finally:
                self._depth -= 1
                if self._depth == 0:
                    if completed:
                        self.conn.commit()
                    else:
                        self.conn.rollback()

    def _commit(self):
        if self._depth == 0:
            self.conn.commit()

    # --- State Methods ---
    def get_state(self, key: str) -> Optional[str]:
        with self._lock:
            self.cursor.execute('SELECT value FROM state WHERE key = ?', (key,))
            row = self.cursor.fetchone()
            return row[0] if row else None

    def set_state(self, key: str, value: str):
        with self._lock:
            self.cursor.execute('INSERT OR REPLACE INTO state (key, value) VALUES (?, ?)', (key, value))
            self._commit()

    def set_states(self, items: Dict[str, str]):
        """Writes several keys in one commit."""
        with self._lock:
            self.cursor.executemany(
                'INSERT OR REPLACE INTO state (key, value) VALUES (?, ?)',
                list(items.items())
            )
            self._commit()

    def get_state_by_prefix(self, prefix: str) -> Dict[str, str]:
        with self._lock:
            self.cursor.execute('SELECT key, value FROM state WHERE key LIKE ?', (f"{prefix}%",))
            return {row[0]: row[1] for row in self.cursor.fetchall()}

    # --- Event Log ---
    def append_events(self, rows: List[Tuple[str, Optional[str], int, str]]):
        """rows: (event_type, user, timestamp, data_json)"""
        if not rows:
            return
        with self._lock:
            self.cursor.executemany(
                'INSERT INTO events (event_type, user, timestamp, data) VALUES (?, ?, ?, ?)',
                rows
            )
            self._commit()

    def get_events(self, user: Optional[str] = None, limit: int = 100) -> List[Tuple[int, str, Optional[str], int, str]]:
        """Returns newest-first (seq, event_type, user, timestamp, data)."""
        with self._lock:
            if user:
                self.cursor.execute(
                    'SELECT seq, event_type, user, timestamp, data FROM events WHERE user = ? ORDER BY seq DESC LIMIT ?',
                    (user, limit)
                )
            else:
                self.cursor.execute(
                    'SELECT seq, event_type, user, timestamp, data FROM events ORDER BY seq DESC LIMIT ?',
                    (limit,)
                )
            return self.cursor.fetchall()

    def close(self):
        with self._lock:
            self.conn.close()
