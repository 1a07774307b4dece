import json
import os
import sqlite3
from datetime import datetime
from typing import Any, Dict, List

from .config import settings
from .models import SessionResult


def get_db_connection():
    """Establishes a connection to the SQLite database."""
    db_path = os.path.join(settings.DB_DIR, settings.DB_FILE)
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn


def create_tables():
    """Creates the log and quiz history tables if they don't exist."""
    conn = get_db_connection()
    with conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp DATETIME DEFAULT CURRENT_TIMESTAMP,
                logger TEXT,
                level TEXT,
                message TEXT
            );
        """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS quiz_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                set_id TEXT NOT NULL,
                mode TEXT NOT NULL,
                score INTEGER NOT NULL,
                total INTEGER NOT NULL,
                questions TEXT NOT NULL,
                created_at TEXT NOT NULL
            );
        """
        )
    conn.close()


def init_db():
    """Initializes the database and creates necessary tables."""
    if not os.path.exists(settings.DB_DIR):
        os.makedirs(settings.DB_DIR)
    create_tables()


def save_quiz_result(result: SessionResult) -> int:
    """Stores a finished session; used as the session completion callback."""
    conn = get_db_connection()
    with conn:
        cursor = conn.execute(
            "INSERT INTO quiz_history"
            " (set_id, mode, score, total, questions, created_at)"
            " VALUES (?, ?, ?, ?, ?, ?)",
            (
                result.set_id or "",
                result.mode.value,
                result.score,
                result.total,
                json.dumps([q.model_dump(mode="json") for q in result.questions]),
                datetime.now().isoformat(timespec="seconds"),
            ),
        )
        row_id = cursor.lastrowid
    conn.close()
    return row_id


def get_history(set_id: str) -> List[Dict[str, Any]]:
    """Quiz history for a set, newest first."""
    conn = get_db_connection()
    rows = conn.execute(
        "SELECT id, set_id, mode, score, total, created_at FROM quiz_history"
        " WHERE set_id = ? ORDER BY created_at DESC, id DESC",
        (set_id,),
    ).fetchall()
    conn.close()
    return [dict(row) for row in rows]
