"""Shared pytest fixtures for the store, service and API tests."""
from pathlib import Path
from typing import Dict

import pytest

TEST_USER_ID = "user_test123"
OTHER_USER_ID = "user_other456"


@pytest.fixture
def temp_db_path(tmp_path) -> Path:
    """Path to a throwaway SQLite database."""
    return tmp_path / "test.db"


@pytest.fixture
def store(temp_db_path):
    """Store with the test user already present."""
    from finance_tracker.db.sqlite_store import SQLiteStore

    store = SQLiteStore(temp_db_path)
    store.add_user(TEST_USER_ID, email="test@example.com", first_name="Test", last_name="User")
    yield store
    store.close()


@pytest.fixture
def service(temp_db_path):
    """Finance service that never calls Claude."""
    from finance_tracker.api.finance_service import FinanceService
    from finance_tracker.intelligence.insights import InsightGenerator

    with FinanceService(db_path=temp_db_path, insight_generator=InsightGenerator()) as service:
        yield service


@pytest.fixture
def category_ids(store) -> Dict[str, int]:
    """Category name -> ID for the seeded categories."""
    return {c["name"]: c["id"] for c in store.get_all_categories()}


@pytest.fixture
def sample_transactions(category_ids):
    """A month of mixed transactions for the test user."""
    return [
        {"amount": 50000, "type": "income", "description": "Salary",
         "category_id": category_ids["Salary"], "transaction_date": "2024-06-01"},
        {"amount": 1200, "type": "expense", "description": "Groceries",
         "category_id": category_ids["Food & Dining"], "transaction_date": "2024-06-03"},
        {"amount": 450, "type": "expense", "description": "Movie night",
         "category_id": category_ids["Entertainment"], "transaction_date": "2024-06-05"},
        {"amount": 800, "type": "expense", "description": "Restaurant dinner",
         "category_id": category_ids["Food & Dining"], "transaction_date": "2024-06-08"},
        {"amount": 3000, "type": "expense", "description": "Electricity bill",
         "category_id": category_ids["Bills & Utilities"], "transaction_date": "2024-05-20"},
    ]
