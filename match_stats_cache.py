"""
Match stats cache repository.

Persistent cache of normalized per-match stats keyed by match id, so finished
matches are only fetched from FACEIT once. Entries expire after a month.
"""

import sqlite3
import logging
import json
import os
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Any
from threading import RLock

from config import DATA_DIR, DB_TIMEOUT, MATCH_CACHE_FILE, MATCH_CACHE_TTL_DAYS
from models import CompleteMatchStats
from utils import ensure_directory_exists


class MatchStatsCache:
    """SQLite-backed store of CompleteMatchStats with a TTL."""

    def __init__(self, db_path: str = None, ttl_days: int = MATCH_CACHE_TTL_DAYS):
        if db_path is None:
            ensure_directory_exists(DATA_DIR)
            self.db_path = os.path.join(DATA_DIR, MATCH_CACHE_FILE)
        else:
            self.db_path = db_path

        self.ttl = timedelta(days=ttl_days)
        self._lock = RLock()
        self._init_database()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection"""
        conn = sqlite3.connect(self.db_path, timeout=DB_TIMEOUT)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.row_factory = sqlite3.Row
        return conn

    def _init_database(self) -> None:
        with self._lock:
            conn = self._get_connection()
            try:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS match_stats (
                        match_id TEXT PRIMARY KEY,
                        stats_data TEXT NOT NULL,
                        stored_at TEXT NOT NULL,
                        last_accessed TEXT NOT NULL,
                        data_size INTEGER DEFAULT 0
                    )
                """)
                conn.execute("""
                    CREATE INDEX IF NOT EXISTS idx_match_stats_stored_at
                    ON match_stats (stored_at)
                """)
                conn.commit()
            finally:
                conn.close()

    def get(self, match_id: str) -> Optional[CompleteMatchStats]:
        """
        Get cached match stats.

        Args:
            match_id: Match identifier

        Returns:
            Stats or None if not found, expired or unreadable
        """
        with self._lock:
            conn = self._get_connection()
            try:
                row = conn.execute("""
                    SELECT stats_data, stored_at FROM match_stats
                    WHERE match_id = ?
                """, (match_id,)).fetchone()

                if not row:
                    return None

                stored_at = datetime.fromisoformat(row['stored_at'])
                if datetime.now(timezone.utc) - stored_at > self.ttl:
                    logging.debug(f"Cached stats for {match_id} expired")
                    return None

                now = datetime.now(timezone.utc).isoformat()
                conn.execute("""
                    UPDATE match_stats SET last_accessed = ?
                    WHERE match_id = ?
                """, (now, match_id))
                conn.commit()

                return CompleteMatchStats.from_dict(json.loads(row['stats_data']))

            except Exception as e:
                logging.error(f"Error getting cached match stats {match_id}: {e}")
                return None
            finally:
                conn.close()

    def put(self, match_id: str, stats: CompleteMatchStats) -> bool:
        """
        Store match stats.

        Args:
            match_id: Match identifier
            stats: Normalized stats to store

        Returns:
            True if successful, False otherwise
        """
        with self._lock:
            conn = self._get_connection()
            try:
                now = datetime.now(timezone.utc).isoformat()
                stats_json = json.dumps(stats.to_dict())
                data_size = len(stats_json)

                conn.execute("""
                    INSERT INTO match_stats (match_id, stats_data, stored_at, last_accessed, data_size)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(match_id) DO UPDATE SET
                        stats_data = ?,
                        stored_at = ?,
                        last_accessed = ?,
                        data_size = ?
                """, (match_id, stats_json, now, now, data_size, stats_json, now, now, data_size))

                conn.commit()
                return True

            except Exception as e:
                conn.rollback()
                logging.error(f"Error caching match stats {match_id}: {e}")
                return False
            finally:
                conn.close()

    def cleanup_expired(self) -> int:
        """Delete expired entries and return how many were removed."""
        with self._lock:
            conn = self._get_connection()
            try:
                cutoff = (datetime.now(timezone.utc) - self.ttl).isoformat()
                cursor = conn.execute("DELETE FROM match_stats WHERE stored_at < ?", (cutoff,))
                conn.commit()

                if cursor.rowcount:
                    logging.info(f"Removed {cursor.rowcount} expired match stats entries")
                return cursor.rowcount

            except Exception as e:
                conn.rollback()
                logging.error(f"Error cleaning up match stats cache: {e}")
                return 0
            finally:
                conn.close()

    def get_storage_stats(self) -> Dict[str, Any]:
        """Get entry count and size of the cache."""
        with self._lock:
            conn = self._get_connection()
            try:
                row = conn.execute("""
                    SELECT COUNT(*) as count, SUM(data_size) as size FROM match_stats
                """).fetchone()

                return {
                    'count': row['count'],
                    'size_mb': (row['size'] or 0) / (1024 * 1024)
                }

            except Exception as e:
                logging.error(f"Error getting match stats cache stats: {e}")
                return {}
            finally:
                conn.close()

    def clear_all(self) -> bool:
        """Remove every cached entry."""
        with self._lock:
            conn = self._get_connection()
            try:
                conn.execute("DELETE FROM match_stats")
                conn.commit()

                logging.info("Cleared match stats cache")
                return True

            except Exception as e:
                conn.rollback()
                logging.error(f"Error clearing match stats cache: {e}")
                return False
            finally:
                conn.close()
