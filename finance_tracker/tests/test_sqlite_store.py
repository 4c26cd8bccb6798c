"""Tests for SQLite store."""
import sqlite3
from pathlib import Path

import pytest

TEST_USER_ID = "user_test123"
OTHER_USER_ID = "user_other456"


class TestSQLiteStore:
    """Test cases for SQLiteStore class."""

    def test_init_creates_tables(self, temp_db_path: Path):
        """Store should create all required tables on initialization."""
        from finance_tracker.db.sqlite_store import SQLiteStore

        store = SQLiteStore(temp_db_path)

        tables = store.get_tables()
        for table in ("users", "categories", "transactions", "budgets"):
            assert table in tables
        store.close()

    def test_init_seeds_default_categories(self, temp_db_path: Path):
        """Store should seed the default categories with colors and icons."""
        from finance_tracker.db.sqlite_store import SQLiteStore

        store = SQLiteStore(temp_db_path)
        categories = store.get_all_categories()

        names = {c["name"] for c in categories}
        assert len(categories) == 12
        assert {"Food & Dining", "Salary", "Other"} <= names
        assert all(c["color"].startswith("#") for c in categories)
        store.close()

    def test_reopen_does_not_duplicate_categories(self, temp_db_path: Path):
        """Seeding is idempotent across restarts."""
        from finance_tracker.db.sqlite_store import SQLiteStore

        SQLiteStore(temp_db_path).close()
        with SQLiteStore(temp_db_path) as store:
            assert len(store.get_all_categories()) == 12

    def test_get_category_by_name_is_case_insensitive(self, store):
        """Category lookup ignores case."""
        category = store.get_category_by_name("food & dining")
        assert category is not None
        assert category["name"] == "Food & Dining"
        assert store.get_category(category["id"]) == category
        assert store.get_category_by_name("Nope") is None


class TestUsers:
    """Test cases for user rows."""

    def test_add_and_get_user(self, store):
        """add_user returns the stored row."""
        user = store.add_user(OTHER_USER_ID, email="other@example.com", first_name="Other")
        assert user["id"] == OTHER_USER_ID
        assert user["email"] == "other@example.com"
        assert user["last_name"] is None
        assert store.get_user("missing") is None

    def test_duplicate_user_rejected(self, store):
        """User IDs are unique."""
        with pytest.raises(sqlite3.IntegrityError):
            store.add_user(TEST_USER_ID, email="dupe@example.com")

    def test_update_user(self, store):
        """Only profile columns are updated."""
        assert store.update_user(TEST_USER_ID, first_name="Renamed", id="hijack")
        user = store.get_user(TEST_USER_ID)
        assert user["first_name"] == "Renamed"
        assert user["last_name"] == "User"
        assert store.update_user(TEST_USER_ID) is False

    def test_upsert_user_overwrites(self, store):
        """Upsert inserts new users and overwrites existing ones."""
        store.upsert_user(OTHER_USER_ID, email="a@example.com", first_name="A")
        store.upsert_user(OTHER_USER_ID, email="b@example.com", first_name="B")
        user = store.get_user(OTHER_USER_ID)
        assert user["email"] == "b@example.com"
        assert user["first_name"] == "B"

    def test_delete_user_cascades(self, store, category_ids):
        """Deleting a user removes their transactions and budgets."""
        food = category_ids["Food & Dining"]
        txn_id = store.add_transaction(TEST_USER_ID, 10, "expense", "Lunch", "2024-06-01", food)
        budget_id = store.add_budget(TEST_USER_ID, food, 500, "monthly", "2024-06-01", "2024-06-30")

        assert store.delete_user(TEST_USER_ID)

        assert store.get_user(TEST_USER_ID) is None
        assert store.get_transaction(txn_id) is None
        assert store.get_budget(budget_id) is None
        assert store.delete_user(TEST_USER_ID) is False


class TestTransactions:
    """Test cases for transaction rows."""

    def test_add_transaction_returns_id(self, store, category_ids):
        """Should add a transaction and return its ID."""
        txn_id = store.add_transaction(
            user_id=TEST_USER_ID,
            amount=42.5,
            txn_type="expense",
            description="Coffee beans",
            transaction_date="2024-06-02",
            category_id=category_ids["Food & Dining"]
        )
        assert isinstance(txn_id, int)
        assert txn_id > 0

    def test_get_transaction_joins_category(self, store, category_ids):
        """Rows carry their category's name, color and icon."""
        txn_id = store.add_transaction(
            TEST_USER_ID, 42.5, "expense", "Coffee beans", "2024-06-02",
            category_ids["Food & Dining"]
        )

        txn = store.get_transaction(txn_id)

        assert txn["amount"] == 42.5
        assert txn["type"] == "expense"
        assert txn["user_id"] == TEST_USER_ID
        assert txn["category_name"] == "Food & Dining"
        assert txn["category_color"].startswith("#")
        assert txn["category_icon"]

    def test_uncategorized_transaction(self, store):
        """A transaction without a category has no category name."""
        txn_id = store.add_transaction(TEST_USER_ID, 5, "expense", "Misc", "2024-06-02")
        assert store.get_transaction(txn_id)["category_name"] is None

    def test_amount_must_be_positive(self, store):
        """The schema rejects non-positive amounts."""
        with pytest.raises(sqlite3.IntegrityError):
            store.add_transaction(TEST_USER_ID, -5, "expense", "Refund", "2024-06-02")

    def test_type_constrained(self, store):
        """The schema rejects unknown transaction types."""
        with pytest.raises(sqlite3.IntegrityError):
            store.add_transaction(TEST_USER_ID, 5, "transfer", "Move", "2024-06-02")

    def test_unknown_user_rejected(self, store):
        """Transactions must reference an existing user."""
        with pytest.raises(sqlite3.IntegrityError):
            store.add_transaction("ghost", 5, "expense", "Boo", "2024-06-02")

    def test_newest_first_by_default(self, store, sample_transactions):
        """Transactions are ordered by date descending, then ID descending."""
        store.add_transactions(TEST_USER_ID, sample_transactions)

        dates = [t["transaction_date"] for t in store.get_transactions(TEST_USER_ID)]
        assert dates == sorted(dates, reverse=True)

        ascending = [t["transaction_date"] for t in store.get_transactions(TEST_USER_ID, ascending=True)]
        assert ascending == sorted(dates)

    def test_same_day_orders_by_id(self, store):
        """Later inserts come first on the same date."""
        first = store.add_transaction(TEST_USER_ID, 1, "expense", "First", "2024-06-02")
        second = store.add_transaction(TEST_USER_ID, 2, "expense", "Second", "2024-06-02")
        assert [t["id"] for t in store.get_transactions(TEST_USER_ID)] == [second, first]

    def test_filters(self, store, sample_transactions, category_ids):
        """Type, category and date range filters combine."""
        store.add_transactions(TEST_USER_ID, sample_transactions)

        assert len(store.get_transactions(TEST_USER_ID, txn_type="income")) == 1
        food = store.get_transactions(TEST_USER_ID, category_id=category_ids["Food & Dining"])
        assert {t["description"] for t in food} == {"Groceries", "Restaurant dinner"}
        june = store.get_transactions(TEST_USER_ID, start_date="2024-06-01", end_date="2024-06-30")
        assert len(june) == 4

    def test_transactions_scoped_to_user(self, store, sample_transactions):
        """Users only see their own transactions."""
        store.add_user(OTHER_USER_ID, email="other@example.com")
        store.add_transactions(TEST_USER_ID, sample_transactions)
        store.add_transaction(OTHER_USER_ID, 99, "expense", "Theirs", "2024-06-02")

        assert len(store.get_transactions(TEST_USER_ID)) == len(sample_transactions)
        assert len(store.get_transactions(OTHER_USER_ID)) == 1

    def test_update_transaction(self, store, category_ids):
        """Updating whitelisted fields changes the row."""
        txn_id = store.add_transaction(TEST_USER_ID, 10, "expense", "Taxi", "2024-06-02")

        assert store.update_transaction(
            txn_id, amount=12, category_id=category_ids["Transportation"], user_id=OTHER_USER_ID
        )

        txn = store.get_transaction(txn_id)
        assert txn["amount"] == 12
        assert txn["category_name"] == "Transportation"
        assert txn["user_id"] == TEST_USER_ID

    def test_update_missing_transaction(self, store):
        """Updating a missing transaction returns False."""
        assert store.update_transaction(9999, amount=1) is False

    def test_delete_transaction(self, store):
        """Deleted transactions are gone."""
        txn_id = store.add_transaction(TEST_USER_ID, 10, "expense", "Taxi", "2024-06-02")
        assert store.delete_transaction(txn_id)
        assert store.get_transaction(txn_id) is None
        assert store.delete_transaction(txn_id) is False


class TestBudgets:
    """Test cases for budget rows."""

    def test_add_and_get_budget(self, store, category_ids):
        """Budgets carry their category's name."""
        budget_id = store.add_budget(
            TEST_USER_ID, category_ids["Shopping"], 2000, "monthly", "2024-06-01", "2024-06-30"
        )

        budget = store.get_budget(budget_id)

        assert budget["amount"] == 2000
        assert budget["period"] == "monthly"
        assert budget["category_name"] == "Shopping"
        assert budget["start_date"] == "2024-06-01"

    def test_period_constrained(self, store, category_ids):
        """The schema rejects unknown periods."""
        with pytest.raises(sqlite3.IntegrityError):
            store.add_budget(TEST_USER_ID, category_ids["Shopping"], 10, "weekly", "2024-06-01", "2024-06-07")

    def test_get_budgets_by_period(self, store, category_ids):
        """Budgets can be filtered by period."""
        store.add_budget(TEST_USER_ID, category_ids["Shopping"], 10, "monthly", "2024-06-01", "2024-06-30")
        store.add_budget(TEST_USER_ID, category_ids["Travel"], 10, "yearly", "2024-01-01", "2024-12-31")

        assert len(store.get_budgets(TEST_USER_ID)) == 2
        yearly = store.get_budgets(TEST_USER_ID, period="yearly")
        assert [b["category_name"] for b in yearly] == ["Travel"]

    def test_find_budget(self, store, category_ids):
        """find_budget matches on user, category and period."""
        shopping = category_ids["Shopping"]
        budget_id = store.add_budget(TEST_USER_ID, shopping, 10, "monthly", "2024-06-01", "2024-06-30")

        assert store.find_budget(TEST_USER_ID, shopping, "monthly")["id"] == budget_id
        assert store.find_budget(TEST_USER_ID, shopping, "yearly") is None
        assert store.find_budget(OTHER_USER_ID, shopping, "monthly") is None

    def test_update_and_delete_budget(self, store, category_ids):
        """Budgets can be updated and deleted."""
        budget_id = store.add_budget(
            TEST_USER_ID, category_ids["Shopping"], 10, "monthly", "2024-06-01", "2024-06-30"
        )

        assert store.update_budget(budget_id, amount=25)
        assert store.get_budget(budget_id)["amount"] == 25

        assert store.delete_budget(budget_id)
        assert store.get_budget(budget_id) is None
        assert store.delete_budget(budget_id) is False
