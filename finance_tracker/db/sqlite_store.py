"""SQLite store for users, transactions, budgets and categories."""
import sqlite3
import threading
from pathlib import Path
from typing import List, Dict, Any, Optional

from finance_tracker.config import DEFAULT_CATEGORIES
from .schema import (
    SCHEMA_SQL,
    DEFAULT_CATEGORIES_SQL,
    TRANSACTION_SELECT_SQL,
    BUDGET_SELECT_SQL,
)


class SQLiteStore:
    """SQLite storage for the four finance tables.

    Every read returns plain dicts. Transaction and budget rows carry their
    category's name, color and icon.
    """

    TRANSACTION_FIELDS = {"amount", "type", "description", "category_id", "transaction_date"}
    BUDGET_FIELDS = {"category_id", "amount", "period", "start_date", "end_date"}
    USER_FIELDS = {"email", "first_name", "last_name", "image_url"}

    def __init__(self, db_path: Path):
        """Initialize the store with database path."""
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        # Reads are fanned out to worker threads, one statement at a time
        self._lock = threading.RLock()
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA foreign_keys=ON")
        self._init_schema()

    def _init_schema(self) -> None:
        """Initialize database schema and seed default categories."""
        cursor = self.conn.cursor()
        cursor.executescript(SCHEMA_SQL)
        cursor.executemany(
            DEFAULT_CATEGORIES_SQL,
            [(c["name"], c["color"], c["icon"]) for c in DEFAULT_CATEGORIES]
        )
        self.conn.commit()

    def close(self) -> None:
        """Close the database connection."""
        if self.conn:
            self.conn.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    def _fetchall(self, query: str, params=()) -> List[Dict[str, Any]]:
        with self._lock:
            cursor = self.conn.execute(query, params)
            return [dict(row) for row in cursor.fetchall()]

    def _fetchone(self, query: str, params=()) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self.conn.execute(query, params).fetchone()
            return dict(row) if row else None

    def _write(self, query: str, params=()) -> sqlite3.Cursor:
        with self._lock:
            cursor = self.conn.execute(query, params)
            self.conn.commit()
            return cursor

    def _update(self, table: str, row_id: Any, allowed: set, fields: Dict[str, Any]) -> bool:
        """Update whitelisted columns of a row and bump updated_at."""
        updates = {k: v for k, v in fields.items() if k in allowed}
        if not updates:
            return False

        set_clause = ", ".join(f"{k} = ?" for k in updates.keys())
        params = list(updates.values()) + [row_id]
        cursor = self._write(
            f"UPDATE {table} SET {set_clause}, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            params
        )
        return cursor.rowcount > 0

    def get_tables(self) -> List[str]:
        """Get list of tables in the database."""
        rows = self._fetchall("SELECT name FROM sqlite_master WHERE type='table'")
        return [row["name"] for row in rows]

    # === User Methods ===

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Get a user by identity-provider ID."""
        return self._fetchone("SELECT * FROM users WHERE id = ?", (user_id,))

    def add_user(
        self,
        user_id: str,
        email: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        image_url: Optional[str] = None
    ) -> Dict[str, Any]:
        """Insert a user and return the stored row."""
        self._write(
            """INSERT INTO users (id, email, first_name, last_name, image_url)
               VALUES (?, ?, ?, ?, ?)""",
            (user_id, email, first_name, last_name, image_url)
        )
        return self.get_user(user_id)

    def update_user(self, user_id: str, **kwargs) -> bool:
        """Update a user's profile fields."""
        return self._update("users", user_id, self.USER_FIELDS, kwargs)

    def upsert_user(
        self,
        user_id: str,
        email: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        image_url: Optional[str] = None
    ) -> Dict[str, Any]:
        """Insert a user or overwrite the profile of an existing one."""
        self._write(
            """INSERT INTO users (id, email, first_name, last_name, image_url)
               VALUES (?, ?, ?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                   email = excluded.email,
                   first_name = excluded.first_name,
                   last_name = excluded.last_name,
                   image_url = excluded.image_url,
                   updated_at = CURRENT_TIMESTAMP""",
            (user_id, email, first_name, last_name, image_url)
        )
        return self.get_user(user_id)

    def delete_user(self, user_id: str) -> bool:
        """Delete a user; their transactions and budgets go with them."""
        cursor = self._write("DELETE FROM users WHERE id = ?", (user_id,))
        return cursor.rowcount > 0

    # === Category Methods ===

    def get_all_categories(self) -> List[Dict[str, Any]]:
        """Get all categories."""
        return self._fetchall("SELECT * FROM categories ORDER BY name")

    def get_category(self, category_id: int) -> Optional[Dict[str, Any]]:
        """Get a single category by ID."""
        return self._fetchone("SELECT * FROM categories WHERE id = ?", (category_id,))

    def get_category_by_name(self, name: str) -> Optional[Dict[str, Any]]:
        """Get a category by name (case-insensitive)."""
        return self._fetchone(
            "SELECT * FROM categories WHERE LOWER(name) = LOWER(?)", (name,)
        )

    # === Transaction Methods ===

    def get_transactions(
        self,
        user_id: str,
        txn_type: Optional[str] = None,
        category_id: Optional[int] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        ascending: bool = False
    ) -> List[Dict[str, Any]]:
        """Get a user's transactions, newest first unless ascending."""
        query = TRANSACTION_SELECT_SQL + " WHERE t.user_id = ?"
        params: List[Any] = [user_id]

        if txn_type:
            query += " AND t.type = ?"
            params.append(txn_type)
        if category_id is not None:
            query += " AND t.category_id = ?"
            params.append(category_id)
        if start_date:
            query += " AND t.transaction_date >= ?"
            params.append(start_date)
        if end_date:
            query += " AND t.transaction_date <= ?"
            params.append(end_date)

        direction = "ASC" if ascending else "DESC"
        query += f" ORDER BY t.transaction_date {direction}, t.id {direction}"
        return self._fetchall(query, params)

    def get_transaction(self, txn_id: int) -> Optional[Dict[str, Any]]:
        """Get a transaction by ID."""
        return self._fetchone(TRANSACTION_SELECT_SQL + " WHERE t.id = ?", (txn_id,))

    def add_transaction(
        self,
        user_id: str,
        amount: float,
        txn_type: str,
        description: str,
        transaction_date: str,
        category_id: Optional[int] = None
    ) -> int:
        """Add a transaction and return its ID."""
        cursor = self._write(
            """INSERT INTO transactions
                   (user_id, amount, type, description, category_id, transaction_date)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (user_id, amount, txn_type, description, category_id, transaction_date)
        )
        return cursor.lastrowid

    def add_transactions(self, user_id: str, transactions: List[Dict[str, Any]]) -> List[int]:
        """Add multiple transactions for one user, returns their IDs."""
        return [
            self.add_transaction(
                user_id=user_id,
                amount=txn["amount"],
                txn_type=txn["type"],
                description=txn["description"],
                transaction_date=txn["transaction_date"],
                category_id=txn.get("category_id")
            )
            for txn in transactions
        ]

    def update_transaction(self, txn_id: int, **kwargs) -> bool:
        """Update a transaction's fields."""
        return self._update("transactions", txn_id, self.TRANSACTION_FIELDS, kwargs)

    def delete_transaction(self, txn_id: int) -> bool:
        """Delete a transaction."""
        cursor = self._write("DELETE FROM transactions WHERE id = ?", (txn_id,))
        return cursor.rowcount > 0

    # === Budget Methods ===

    def get_budgets(self, user_id: str, period: Optional[str] = None) -> List[Dict[str, Any]]:
        """Get a user's budgets, optionally for a single period."""
        query = BUDGET_SELECT_SQL + " WHERE b.user_id = ?"
        params: List[Any] = [user_id]
        if period:
            query += " AND b.period = ?"
            params.append(period)
        query += " ORDER BY b.created_at, b.id"
        return self._fetchall(query, params)

    def get_budget(self, budget_id: int) -> Optional[Dict[str, Any]]:
        """Get a budget by ID."""
        return self._fetchone(BUDGET_SELECT_SQL + " WHERE b.id = ?", (budget_id,))

    def find_budget(
        self,
        user_id: str,
        category_id: int,
        period: str
    ) -> Optional[Dict[str, Any]]:
        """Find the budget for a (user, category, period) triple, if any."""
        return self._fetchone(
            """SELECT * FROM budgets
               WHERE user_id = ? AND category_id = ? AND period = ?""",
            (user_id, category_id, period)
        )

    def add_budget(
        self,
        user_id: str,
        category_id: int,
        amount: float,
        period: str,
        start_date: str,
        end_date: str
    ) -> int:
        """Add a budget and return its ID."""
        cursor = self._write(
            """INSERT INTO budgets
                   (user_id, category_id, amount, period, start_date, end_date)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (user_id, category_id, amount, period, start_date, end_date)
        )
        return cursor.lastrowid

    def update_budget(self, budget_id: int, **kwargs) -> bool:
        """Update a budget's fields."""
        return self._update("budgets", budget_id, self.BUDGET_FIELDS, kwargs)

    def delete_budget(self, budget_id: int) -> bool:
        """Delete a budget."""
        cursor = self._write("DELETE FROM budgets WHERE id = ?", (budget_id,))
        return cursor.rowcount > 0
