"""
Database operations and connection management.

Listings and users live in a SQLite file. ``ListingStore`` and ``UserStore``
are the only code that speaks SQL; everything above them works with the
records from ``bazaar.records``.
"""
import json
import logging
import math
import sqlite3
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Dict, List, Optional, Tuple

from .config import config
from .errors import ServerFault
from .records import Listing, ListingQuery, User, ROLE_SELLER, ROLE_USER
from .utils import parse_iso, to_iso

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0

# Schema definitions
DDL_LISTINGS = """
CREATE TABLE IF NOT EXISTS listings (
  id TEXT PRIMARY KEY,
  owner_id TEXT NOT NULL,
  title TEXT NOT NULL,
  description TEXT NOT NULL DEFAULT '',
  category TEXT NOT NULL,
  condition TEXT NOT NULL DEFAULT 'good',
  location TEXT NOT NULL DEFAULT '',
  latitude REAL,
  longitude REAL,
  price REAL NOT NULL DEFAULT 0,
  is_donation INTEGER NOT NULL DEFAULT 0,
  country_code TEXT NOT NULL DEFAULT '+254',
  seller_phone TEXT NOT NULL,
  images TEXT NOT NULL,
  status TEXT NOT NULL DEFAULT 'active',
  views INTEGER NOT NULL DEFAULT 0,
  sold_at TEXT,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL
);
"""

DDL_USERS = """
CREATE TABLE IF NOT EXISTS users (
  id TEXT PRIMARY KEY,
  name TEXT NOT NULL DEFAULT '',
  email TEXT NOT NULL DEFAULT '',
  avatar TEXT NOT NULL DEFAULT '',
  bio TEXT NOT NULL DEFAULT '',
  role TEXT NOT NULL DEFAULT 'user',
  is_active INTEGER NOT NULL DEFAULT 1,
  last_login TEXT,
  total_listings INTEGER NOT NULL DEFAULT 0,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL
);
"""

DDL_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_listings_owner_created ON listings(owner_id, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_listings_status ON listings(status);",
    "CREATE INDEX IF NOT EXISTS idx_listings_status_sold_at ON listings(status, sold_at);",
    "CREATE INDEX IF NOT EXISTS idx_users_email ON users(email);",
]

LISTING_COLUMNS = (
    "id", "owner_id", "title", "description", "category", "condition", "location",
    "latitude", "longitude", "price", "is_donation", "country_code", "seller_phone",
    "images", "status", "views", "sold_at", "created_at", "updated_at",
)

USER_COLUMNS = (
    "id", "name", "email", "avatar", "bio", "role", "is_active", "last_login",
    "total_listings", "created_at", "updated_at",
)


@contextmanager
def get_db_connection(path: Optional[str] = None):
    """Get a database connection with proper error handling."""
    conn = None
    db_path = path or config.DB_PATH
    try:
        if not db_path:
            raise ValueError("Database path not configured")

        conn = sqlite3.connect(db_path, timeout=10)
        conn.row_factory = sqlite3.Row  # Enable dict-like access
        conn.execute("PRAGMA journal_mode=WAL;")
        yield conn
    except sqlite3.Error as e:
        logger.error(f"Database error: {e}")
        raise ServerFault("Database error") from e
    finally:
        if conn is not None:
            conn.close()


def init_db(path: Optional[str] = None) -> None:
    """Initialize database schema with tables and indexes."""
    with get_db_connection(path) as conn:
        conn.execute(DDL_LISTINGS)
        conn.execute(DDL_USERS)
        for ddl in DDL_INDEXES:
            conn.execute(ddl)
        conn.commit()


def _like(term: str) -> str:
    escaped = term.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def build_where_clause(query: ListingQuery) -> Tuple[str, List[Any]]:
    """Build WHERE clause and parameters from filters."""
    where_conditions = []
    parameters: List[Any] = []

    if query.owner_id:
        where_conditions.append("owner_id = ?")
        parameters.append(query.owner_id)

    if query.status:
        where_conditions.append("status = ?")
        parameters.append(query.status)

    if query.category:
        where_conditions.append("category = ?")
        parameters.append(query.category)

    # Text search
    if query.q:
        where_conditions.append(
            "(lower(title) LIKE ? ESCAPE '\\' OR lower(description) LIKE ? ESCAPE '\\')"
        )
        search_term = _like(query.q)
        parameters.extend([search_term, search_term])

    if query.location:
        where_conditions.append("lower(location) LIKE ? ESCAPE '\\'")
        parameters.append(_like(query.location))

    # Bounding box around the radius; exact distance is checked afterwards
    if query.has_radius:
        lat_delta = math.degrees(query.radius_km / EARTH_RADIUS_KM)
        cos_lat = max(math.cos(math.radians(query.lat)), 1e-6)
        lon_delta = min(math.degrees(query.radius_km / (EARTH_RADIUS_KM * cos_lat)), 180.0)
        where_conditions.append("(latitude BETWEEN ? AND ?)")
        parameters.extend([query.lat - lat_delta, query.lat + lat_delta])
        where_conditions.append("(longitude BETWEEN ? AND ?)")
        parameters.extend([query.lon - lon_delta, query.lon + lon_delta])

    where_clause = " WHERE " + " AND ".join(where_conditions) if where_conditions else ""
    return where_clause, parameters


def get_order_clause(sort: str) -> str:
    """Generate ORDER BY clause based on sort parameter."""
    sort_options = {
        "created_desc": "ORDER BY created_at DESC",
        "created_asc": "ORDER BY created_at ASC",
        "price_asc": "ORDER BY price ASC, created_at DESC",
        "price_desc": "ORDER BY price DESC, created_at DESC",
        "views_desc": "ORDER BY views DESC, created_at DESC",
    }
    return sort_options.get(sort, sort_options["created_desc"])


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def listing_to_row(listing: Listing) -> Dict[str, Any]:
    return {
        "id": listing.id,
        "owner_id": listing.owner_id,
        "title": listing.title,
        "description": listing.description,
        "category": listing.category,
        "condition": listing.condition,
        "location": listing.location,
        "latitude": listing.latitude,
        "longitude": listing.longitude,
        "price": float(listing.price),
        "is_donation": 1 if listing.is_donation else 0,
        "country_code": listing.country_code,
        "seller_phone": listing.seller_phone,
        "images": json.dumps(listing.images, ensure_ascii=False),
        "status": listing.status,
        "views": int(listing.views),
        "sold_at": to_iso(listing.sold_at),
        "created_at": to_iso(listing.created_at),
        "updated_at": to_iso(listing.updated_at),
    }


def listing_from_row(row: sqlite3.Row) -> Listing:
    return Listing(
        id=row["id"],
        owner_id=row["owner_id"],
        title=row["title"],
        description=row["description"],
        category=row["category"],
        condition=row["condition"],
        location=row["location"],
        latitude=row["latitude"],
        longitude=row["longitude"],
        price=float(row["price"] or 0),
        is_donation=bool(row["is_donation"]),
        country_code=row["country_code"],
        seller_phone=row["seller_phone"],
        images=json.loads(row["images"] or "[]"),
        status=row["status"],
        views=int(row["views"] or 0),
        sold_at=parse_iso(row["sold_at"]),
        created_at=parse_iso(row["created_at"]),
        updated_at=parse_iso(row["updated_at"]),
    )


def user_to_row(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name or "",
        "email": user.email or "",
        "avatar": user.avatar or "",
        "bio": user.bio or "",
        "role": user.role,
        "is_active": 1 if user.is_active else 0,
        "last_login": to_iso(user.last_login),
        "total_listings": int(user.total_listings),
        "created_at": to_iso(user.created_at),
        "updated_at": to_iso(user.updated_at),
    }


def user_from_row(row: sqlite3.Row) -> User:
    return User(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        avatar=row["avatar"],
        bio=row["bio"],
        role=row["role"],
        is_active=bool(row["is_active"]),
        last_login=parse_iso(row["last_login"]),
        total_listings=int(row["total_listings"] or 0),
        created_at=parse_iso(row["created_at"]),
        updated_at=parse_iso(row["updated_at"]),
    )


def _is_missing_table(exc: sqlite3.OperationalError) -> bool:
    return "no such table" in str(exc).lower()


class ListingStore:
    """Persistent collection of listing records."""

    def __init__(self, path: Optional[str] = None):
        self.path = path

    def _connect(self):
        return get_db_connection(self.path)

    def insert(self, listing: Listing) -> Listing:
        row = listing_to_row(listing)
        placeholders = ",".join("?" for _ in LISTING_COLUMNS)
        with self._connect() as conn:
            conn.execute(
                f"INSERT INTO listings ({','.join(LISTING_COLUMNS)}) VALUES ({placeholders})",
                [row[c] for c in LISTING_COLUMNS],
            )
            conn.commit()
        return listing

    def get(self, listing_id: str) -> Optional[Listing]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM listings WHERE id = ?", (listing_id,)).fetchone()
        return listing_from_row(row) if row else None

    def save(self, listing: Listing) -> Listing:
        """Write every mutable column of an existing listing back."""
        row = listing_to_row(listing)
        columns = [c for c in LISTING_COLUMNS if c not in ("id", "owner_id", "views", "created_at")]
        assignments = ", ".join(f"{c} = ?" for c in columns)
        with self._connect() as conn:
            conn.execute(
                f"UPDATE listings SET {assignments} WHERE id = ?",
                [row[c] for c in columns] + [listing.id],
            )
            conn.commit()
        return listing

    def delete(self, listing_id: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM listings WHERE id = ?", (listing_id,))
            conn.commit()
            return cur.rowcount > 0

    def increment_views(self, listing_id: str) -> Optional[int]:
        """Atomically add one view. Returns the new count, or None if absent."""
        with self._connect() as conn:
            cur = conn.execute("UPDATE listings SET views = views + 1 WHERE id = ?", (listing_id,))
            if cur.rowcount == 0:
                conn.rollback()
                return None
            row = conn.execute("SELECT views FROM listings WHERE id = ?", (listing_id,)).fetchone()
            conn.commit()
        return int(row["views"])

    def _select(self, query: ListingQuery) -> List[Listing]:
        where_clause, parameters = build_where_clause(query)
        order_clause = get_order_clause(query.sort)
        sql = f"SELECT * FROM listings {where_clause} {order_clause}"
        paginate_in_sql = not query.has_radius and query.limit is not None
        if paginate_in_sql:
            sql += " LIMIT ? OFFSET ?"
            parameters = parameters + [query.limit, query.offset]

        with self._connect() as conn:
            try:
                rows = conn.execute(sql, parameters).fetchall()
            except sqlite3.OperationalError as e:
                if not _is_missing_table(e):
                    raise
                logger.warning("Listings table does not exist yet; returning no listings")
                return []

        listings = [listing_from_row(r) for r in rows]
        if query.has_radius:
            listings = [
                l for l in listings
                if l.latitude is not None and l.longitude is not None
                and haversine_km(query.lat, query.lon, l.latitude, l.longitude) <= query.radius_km
            ]
            if query.limit is not None:
                listings = listings[query.offset:query.offset + query.limit]
        return listings

    def find(self, query: ListingQuery) -> List[Listing]:
        """Get listings with filters, sorting, and pagination."""
        return self._select(query)

    def count(self, query: ListingQuery) -> int:
        """Get total count of listings matching filters, ignoring pagination."""
        if query.has_radius:
            unpaged = replace(query, limit=None, offset=0)
            return len(self._select(unpaged))

        where_clause, parameters = build_where_clause(query)
        with self._connect() as conn:
            try:
                result = conn.execute(f"SELECT COUNT(*) FROM listings {where_clause}", parameters).fetchone()
            except sqlite3.OperationalError as e:
                if not _is_missing_table(e):
                    raise
                return 0
        return result[0] if result else 0

    def by_owner(self, owner_id: str) -> List[Listing]:
        return self.find(ListingQuery(owner_id=owner_id))

    def all(self) -> List[Listing]:
        return self.find(ListingQuery())


class UserStore:
    """Persistent collection of user records keyed by identity-provider id."""

    def __init__(self, path: Optional[str] = None):
        self.path = path

    def _connect(self):
        return get_db_connection(self.path)

    def get(self, user_id: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return user_from_row(row) if row else None

    def upsert(self, user: User) -> User:
        row = user_to_row(user)
        placeholders = ",".join("?" for _ in USER_COLUMNS)
        updates = ", ".join(
            f"{c} = excluded.{c}" for c in USER_COLUMNS if c not in ("id", "created_at", "total_listings")
        )
        with self._connect() as conn:
            conn.execute(
                f"INSERT INTO users ({','.join(USER_COLUMNS)}) VALUES ({placeholders}) "
                f"ON CONFLICT(id) DO UPDATE SET {updates}",
                [row[c] for c in USER_COLUMNS],
            )
            conn.commit()
        return user

    def all(self) -> List[User]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM users ORDER BY created_at DESC").fetchall()
        return [user_from_row(r) for r in rows]

    def set_role(self, user_id: str, role: str, updated_at: str) -> Optional[User]:
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE users SET role = ?, updated_at = ? WHERE id = ?", (role, updated_at, user_id)
            )
            conn.commit()
            if cur.rowcount == 0:
                return None
        return self.get(user_id)

    def adjust_listing_count(self, user_id: str, delta: int) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE users SET total_listings = MAX(total_listings + ?, 0) WHERE id = ?",
                (delta, user_id),
            )
            conn.commit()
            return cur.rowcount > 0

    def promote_to_seller(self, user_id: str, updated_at: str) -> bool:
        """Upgrade a plain user to seller; sellers and admins are left alone."""
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE users SET role = ?, updated_at = ? WHERE id = ? AND role = ?",
                (ROLE_SELLER, updated_at, user_id, ROLE_USER),
            )
            conn.commit()
            return cur.rowcount > 0
