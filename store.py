# store.py

import datetime
import logging
import sqlite3
import uuid

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"

COLUMNS = ("id", "lat", "lon", "ip", "image_url", "address", "created_at")


class StoreError(Exception):
    """Raised when the underlying database fails."""


def format_timestamp(dt):
    """UTC ISO-8601 with milliseconds, e.g. 2024-05-01T09:30:00.123Z"""
    if dt.tzinfo is not None:
        dt = dt.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return dt.strftime(TIMESTAMP_FORMAT) + ".%03dZ" % (dt.microsecond // 1000)


def utc_now():
    return datetime.datetime.now(datetime.timezone.utc)


def row_to_record(row):
    if row is None:
        return None
    return {
        "id": row["id"],
        "lat": row["lat"],
        "lon": row["lon"],
        "ip": row["ip"],
        "imageUrl": row["image_url"],
        "address": row["address"],
        "createdAt": row["created_at"],
    }


class LocationStore:
    """Flat collection of location-capture records kept in a sqlite file."""

    def __init__(self, database_file):
        self.database_file = database_file
        self.connected = False

    def _connect(self):
        conn = sqlite3.connect(self.database_file)
        conn.row_factory = sqlite3.Row
        return conn

    def _execute(self, sql, params=(), fetch=None):
        try:
            conn = self._connect()
            try:
                cursor = conn.execute(sql, params)
                if fetch == "one":
                    result = cursor.fetchone()
                elif fetch == "all":
                    result = cursor.fetchall()
                else:
                    result = cursor.rowcount
                conn.commit()
                return result
            finally:
                conn.close()
        except (sqlite3.Error, OverflowError) as e:
            # OverflowError: parameter too large for an SQLite INTEGER
            raise StoreError(str(e)) from e

    def init(self):
        self._execute("""
            CREATE TABLE IF NOT EXISTS locations (
                id TEXT PRIMARY KEY,
                lat TEXT,
                lon TEXT,
                ip TEXT,
                image_url TEXT,
                address TEXT,
                created_at TEXT NOT NULL
            )
        """)
        self._execute(
            "CREATE INDEX IF NOT EXISTS idx_locations_created_at ON locations (created_at)"
        )
        self.connected = True
        logger.info("Database ready at %s", self.database_file)

    def close(self):
        self.connected = False
        logger.info("Database closed")

    def ping(self):
        if not self.connected:
            return False
        try:
            self._execute("SELECT 1", fetch="one")
        except StoreError:
            return False
        return True

    def create(self, lat, lon, ip, image_url=None, address=None, created_at=None):
        record_id = uuid.uuid4().hex
        created = format_timestamp(created_at or utc_now())
        self._execute(
            """
            INSERT INTO locations (id, lat, lon, ip, image_url, address, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (record_id, lat, lon, ip, image_url, address, created),
        )
        return self.find_by_id(record_id)

    def find(self, skip=0, limit=None):
        """Records newest first; `limit=None` returns everything after `skip`."""
        rows = self._execute(
            """
            SELECT * FROM locations
            ORDER BY created_at DESC, rowid DESC
            LIMIT ? OFFSET ?
            """,
            (-1 if limit is None else limit, skip),
            fetch="all",
        )
        return [row_to_record(row) for row in rows]

    def find_by_id(self, record_id):
        row = self._execute(
            "SELECT * FROM locations WHERE id = ?", (record_id,), fetch="one"
        )
        return row_to_record(row)

    def delete_by_id(self, record_id):
        record = self.find_by_id(record_id)
        if record is None:
            return None
        # a concurrent delete may have won between the lookup and here
        deleted = self._execute("DELETE FROM locations WHERE id = ?", (record_id,))
        return record if deleted else None

    def delete_all(self):
        return self._execute("DELETE FROM locations")

    def count(self, since=None):
        if since is None:
            row = self._execute("SELECT COUNT(*) FROM locations", fetch="one")
        else:
            row = self._execute(
                "SELECT COUNT(*) FROM locations WHERE created_at >= ?",
                (format_timestamp(since),),
                fetch="one",
            )
        return row[0]

    def distinct_ips(self):
        rows = self._execute(
            "SELECT DISTINCT ip FROM locations ORDER BY ip", fetch="all"
        )
        return [row["ip"] for row in rows]

    def hourly_counts(self, since):
        """Counts grouped by UTC (date, hour) for records created at or after `since`."""
        rows = self._execute(
            """
            SELECT substr(created_at, 1, 10) AS date,
                   CAST(substr(created_at, 12, 2) AS INTEGER) AS hour,
                   COUNT(*) AS count
            FROM locations
            WHERE created_at >= ?
            GROUP BY date, hour
            ORDER BY date ASC, hour ASC
            """,
            (format_timestamp(since),),
            fetch="all",
        )
        return [
            {"date": row["date"], "hour": row["hour"], "count": row["count"]}
            for row in rows
        ]
