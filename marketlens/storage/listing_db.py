# marketlens/storage/listing_db.py

"""SQLite-backed store of every listing the engine has captured."""

import logging
import sqlite3
import threading
from collections.abc import Iterable, Sequence
from datetime import datetime
from pathlib import Path

from marketlens.config.settings import Settings
from marketlens.models.listing import Listing, Source

logger = logging.getLogger("marketlens.listing_db")

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS listings (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    source      TEXT    NOT NULL,
    title       TEXT    NOT NULL,
    price       INTEGER,
    price_text  TEXT    NOT NULL DEFAULT '',
    product_url TEXT    NOT NULL,
    image_url   TEXT    NOT NULL DEFAULT '',
    location    TEXT    NOT NULL DEFAULT '',
    condition   TEXT    NOT NULL DEFAULT '',
    seller_name TEXT    NOT NULL DEFAULT '',
    captured_at TEXT    NOT NULL,
    UNIQUE (source, product_url)
);

CREATE INDEX IF NOT EXISTS idx_listings_source_price
    ON listings(source, price);
"""

_COLUMNS = (
    "source, title, price, price_text, product_url, image_url, "
    "location, condition, seller_name, captured_at"
)


def _escape_like(term: str) -> str:
    """Escape LIKE wildcards so *term* matches literally."""
    return (
        term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    )


def _row_to_listing(row: Sequence[object]) -> Listing:
    return Listing(
        source=Source(str(row[0])),
        title=str(row[1]),
        price=int(str(row[2])) if row[2] is not None else None,
        price_text=str(row[3]),
        product_url=str(row[4]),
        image_url=str(row[5]),
        location=str(row[6]),
        condition=str(row[7]),
        seller_name=str(row[8]),
        timestamp=datetime.fromisoformat(str(row[9])),
    )


class ListingStore:
    """Passive document store queried by the market analyzer.

    Insertion is idempotent on ``(source, product_url)``: the first
    capture of a listing wins.  Writes are serialised with a lock so
    the store can be used from worker threads.
    """

    def __init__(self, db_path: Path | None = None) -> None:
        path = db_path or Settings.LISTING_DB_PATH
        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(str(path), check_same_thread=False)
        if str(path) != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)
        logger.debug("ListingStore opened at %s", path)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    # ── Writing ──────────────────────────────────────────

    def upsert_many(self, listings: Iterable[Listing]) -> int:
        """Insert listings not seen before; returns how many were new."""
        rows = [
            (
                item.source.value,
                item.title,
                item.price,
                item.price_text,
                item.product_url,
                item.image_url,
                item.location,
                item.condition,
                item.seller_name,
                item.timestamp.isoformat(),
            )
            for item in listings
            if item.product_url
        ]
        if not rows:
            return 0

        with self._lock:
            before = self._conn.total_changes
            self._conn.executemany(
                f"INSERT OR IGNORE INTO listings ({_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                rows,
            )
            self._conn.commit()
            inserted = self._conn.total_changes - before

        if inserted:
            logger.info("Stored %d new listings", inserted)
        return inserted

    # ── Querying ─────────────────────────────────────────

    def find_listings(
        self,
        source: str,
        title_terms: Sequence[str],
        exclude_url: str | None = None,
        min_price: int = 0,
        limit: int = 5,
    ) -> list[Listing]:
        """Cheapest listings of *source* whose title contains any term.

        Only listings priced strictly above *min_price* qualify.  The
        match is a case-insensitive substring match.
        """
        terms = [t for t in title_terms if t]
        if not terms or limit <= 0:
            return []

        clauses = " OR ".join(
            "title LIKE ? ESCAPE '\\'" for _ in terms
        )
        params: list[object] = [source]
        params.extend(f"%{_escape_like(t)}%" for t in terms)
        sql = (
            f"SELECT {_COLUMNS} FROM listings "
            f"WHERE source = ? AND ({clauses}) "
            "AND price IS NOT NULL AND price > ? "
        )
        params.append(min_price)
        if exclude_url:
            sql += "AND product_url != ? "
            params.append(exclude_url)
        sql += "ORDER BY price ASC, id ASC LIMIT ?"
        params.append(limit)

        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [_row_to_listing(r) for r in rows]

    def get(self, source: str, product_url: str) -> Listing | None:
        """Look up one listing by its natural key."""
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_COLUMNS} FROM listings "
                "WHERE source = ? AND product_url = ?",
                (source, product_url),
            ).fetchone()
        return _row_to_listing(row) if row else None

    def count(self, source: str | None = None) -> int:
        """Number of stored listings, optionally for one source."""
        with self._lock:
            if source is None:
                row = self._conn.execute(
                    "SELECT COUNT(*) FROM listings"
                ).fetchone()
            else:
                row = self._conn.execute(
                    "SELECT COUNT(*) FROM listings WHERE source = ?",
                    (source,),
                ).fetchone()
        return int(row[0])
