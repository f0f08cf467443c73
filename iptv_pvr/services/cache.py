"""
SQLite-based cache for downloaded playlist and EPG artifacts.
Provides TTL-based invalidation so restarts do not re-download everything.
"""
import aiosqlite
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional
from iptv_pvr.config import get_settings


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class CacheService:
    """Async SQLite cache keyed by artifact name and source location."""

    def __init__(self, db_path: Optional[str] = None):
        settings = get_settings()
        self.db_path = db_path or settings.database_path
        self.default_ttl = settings.cache_ttl_seconds
        self._ensure_directory()

    def _ensure_directory(self):
        """Create data directory if it doesn't exist."""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    async def initialize(self):
        """Create database tables if they don't exist."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS artifacts (
                    name TEXT NOT NULL,
                    location TEXT NOT NULL,
                    content TEXT NOT NULL,
                    expires_at TIMESTAMP NOT NULL,
                    fetched_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (name, location)
                )
            """)
            await db.commit()

    async def get(self, name: str, location: str) -> Optional[str]:
        """Get cached artifact if not expired."""
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "SELECT content FROM artifacts WHERE name = ? AND location = ? AND expires_at > ?",
                (name, location, _now())
            )
            row = await cursor.fetchone()
            if row:
                return row[0]
            return None

    async def set(self, name: str, location: str, content: str, ttl_seconds: Optional[int] = None):
        """Store an artifact with TTL, replacing any previous copy."""
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl)
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """INSERT OR REPLACE INTO artifacts (name, location, content, expires_at)
                   VALUES (?, ?, ?, ?)""",
                (name, location, content, expires_at.isoformat())
            )
            await db.commit()

    async def clear_expired(self):
        """Remove expired artifacts."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                "DELETE FROM artifacts WHERE expires_at < ?",
                (_now(),)
            )
            await db.commit()

    async def clear(self):
        """Remove every cached artifact."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("DELETE FROM artifacts")
            await db.commit()

    async def get_stats(self) -> dict:
        """Get artifact counts and total cached size."""
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "SELECT COUNT(*), COALESCE(SUM(LENGTH(content)), 0) FROM artifacts WHERE expires_at > ?",
                (_now(),)
            )
            count, size = await cursor.fetchone()
            return {"artifacts": count, "bytes": size}


# Singleton instance
_cache_service: Optional[CacheService] = None


async def get_cache() -> CacheService:
    """Get or create cache service singleton."""
    global _cache_service
    if _cache_service is None:
        _cache_service = CacheService()
        await _cache_service.initialize()
    return _cache_service
