"""Call history in SQLite."""

import logging
import sqlite3
from datetime import date, datetime

logger = logging.getLogger(__name__)

CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS calls (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    started_at TIMESTAMP NOT NULL,
    ended_at TIMESTAMP,
    duration_secs INTEGER,
    direction TEXT,
    protocol TEXT,
    remote TEXT,
    bytes_sent INTEGER,
    bytes_recv INTEGER,
    disconnect_reason TEXT
)
"""


class CallLog:
    """SQLite-backed record of every call carried by the modem."""

    def __init__(self, db_path="call_log.db"):
        logger.info(f"Opening call log database: {db_path}")
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute(CREATE_TABLE)
        self.conn.commit()

    def start_call(self, direction, protocol, remote):
        """Record a new call. Returns the call ID."""
        cursor = self.conn.execute(
            "INSERT INTO calls (started_at, direction, protocol, remote) VALUES (?, ?, ?, ?)",
            (datetime.now().isoformat(), direction, protocol, remote),
        )
        self.conn.commit()
        call_id = cursor.lastrowid
        logger.info(f"Call log: call {call_id} started ({direction} {protocol} {remote})")
        return call_id

    def end_call(self, call_id, sent=0, recv=0, disconnect_reason="unknown"):
        """Finalize a call with end time, byte counts and disconnect reason."""
        now = datetime.now()
        row = self.conn.execute(
            "SELECT started_at FROM calls WHERE id = ?", (call_id,)
        ).fetchone()
        duration = 0
        if row and row["started_at"]:
            started = datetime.fromisoformat(row["started_at"])
            duration = int((now - started).total_seconds())
        self.conn.execute(
            "UPDATE calls SET ended_at = ?, duration_secs = ?, bytes_sent = ?, bytes_recv = ?, "
            "disconnect_reason = ? WHERE id = ?",
            (now.isoformat(), duration, sent, recv, disconnect_reason, call_id),
        )
        self.conn.commit()
        logger.info(f"Call log: call {call_id} ended ({disconnect_reason}, {duration}s)")

    def get_stats(self):
        """Return usage statistics dict."""
        stats = {}

        row = self.conn.execute("SELECT COUNT(*) as cnt FROM calls").fetchone()
        stats["total_calls"] = row["cnt"]

        today = date.today().isoformat()
        row = self.conn.execute(
            "SELECT COUNT(*) as cnt FROM calls WHERE DATE(started_at) = ?", (today,)
        ).fetchone()
        stats["calls_today"] = row["cnt"]

        row = self.conn.execute(
            "SELECT AVG(duration_secs) as avg_dur FROM calls WHERE duration_secs IS NOT NULL"
        ).fetchone()
        stats["avg_duration_secs"] = int(row["avg_dur"] or 0)

        row = self.conn.execute(
            "SELECT SUM(bytes_sent) as sent, SUM(bytes_recv) as recv FROM calls"
        ).fetchone()
        stats["bytes_sent"] = int(row["sent"] or 0)
        stats["bytes_recv"] = int(row["recv"] or 0)

        rows = self.conn.execute(
            "SELECT remote, COUNT(*) as cnt FROM calls WHERE remote IS NOT NULL "
            "GROUP BY remote ORDER BY cnt DESC LIMIT 5"
        ).fetchall()
        stats["top_remotes"] = [(r["remote"], r["cnt"]) for r in rows]

        return stats

    def format_lines(self):
        """Summary lines for the AT* state dump."""
        stats = self.get_stats()
        lines = [
            f"Calls    : {stats['total_calls']} total, {stats['calls_today']} today, "
            f"avg {stats['avg_duration_secs']}s",
            f"Traffic  : {stats['bytes_sent']} sent, {stats['bytes_recv']} received",
        ]
        for remote, count in stats["top_remotes"]:
            lines.append(f"  {count:4d} {remote}")
        return lines

    def close(self):
        """Close the database connection."""
        self.conn.close()
