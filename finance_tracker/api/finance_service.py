"""Finance service - main orchestration layer."""
import asyncio
import logging
import math
import sqlite3
from datetime import date
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import pandas as pd

from finance_tracker.auth import Identity, identity_from_clerk
from finance_tracker.config import (
    ANTHROPIC_API_KEY,
    DB_PATH,
    RECENT_TRANSACTIONS,
    ensure_data_dir,
)
from finance_tracker.db.sqlite_store import SQLiteStore
from finance_tracker.intelligence import aggregation
from finance_tracker.intelligence.aggregation import BUDGET_PERIODS, TRANSACTION_TYPES
from finance_tracker.intelligence.insights import InsightGenerator


logger = logging.getLogger(__name__)

REQUIRED_TRANSACTION_FIELDS = ("amount", "description", "category_id", "transaction_date", "type")
EXPORT_COLUMNS = ["Date", "Description", "Category", "Type", "Amount"]


class ValidationError(ValueError):
    """Raised when user input is rejected; nothing is written."""


class DuplicateBudgetError(ValidationError):
    """Raised when a budget already exists for the category and period."""


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class FinanceService:
    """Main service for the finance tracker.

    Owns the store and the insight generator, validates user input and
    assembles the views served by the API, CLI and MCP server.
    """

    def __init__(
        self,
        db_path: Optional[Path] = None,
        insight_generator: Optional[InsightGenerator] = None
    ):
        """Initialize the finance service.

        Args:
            db_path: Path to SQLite database (default: ~/.finance_tracker/finance.db)
            insight_generator: Insight generator (default: Claude with the configured key)
        """
        if db_path is None:
            ensure_data_dir()

        self.db_path = db_path or DB_PATH
        self.store = SQLiteStore(self.db_path)
        self.insight_generator = insight_generator or InsightGenerator(api_key=ANTHROPIC_API_KEY)

    def close(self):
        """Close all connections."""
        self.store.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # === Users ===

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self.store.get_user(user_id)

    def sync_user(self, identity: Identity) -> Dict[str, Any]:
        """Create or refresh the local copy of a signed-in user."""
        existing = self.store.get_user(identity.user_id)
        if existing is None:
            logger.info(f"Creating user {identity.user_id}")
            return self.store.add_user(
                identity.user_id,
                email=identity.email or "",
                first_name=identity.first_name or "",
                last_name=identity.last_name or "",
                image_url=identity.image_url or ""
            )

        self.store.update_user(
            identity.user_id,
            email=identity.email or existing["email"],
            first_name=identity.first_name or existing["first_name"],
            last_name=identity.last_name or existing["last_name"],
            image_url=identity.image_url or existing["image_url"]
        )
        return self.store.get_user(identity.user_id)

    def ensure_user_exists(self, user_id: str, email: Optional[str] = None) -> Dict[str, Any]:
        """Make sure a user row exists before writing rows that reference it."""
        existing = self.store.get_user(user_id)
        if existing:
            return existing
        return self.store.add_user(user_id, email=email or f"user_{user_id}@temp.com")

    def update_profile(
        self,
        user_id: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """Update a user's name. Returns None if the user is unknown."""
        if self.store.get_user(user_id) is None:
            return None
        updates = {
            key: value
            for key, value in (("first_name", first_name), ("last_name", last_name))
            if value is not None
        }
        if updates:
            self.store.update_user(user_id, **updates)
        return self.store.get_user(user_id)

    def handle_user_event(self, event_type: str, data: Dict[str, Any]) -> bool:
        """Mirror an identity-provider lifecycle event into the users table.

        Returns:
            True if the event type was handled
        """
        if event_type in ("user.created", "user.updated"):
            identity = identity_from_clerk(data)
            self.store.upsert_user(
                identity.user_id,
                email=identity.email,
                first_name=identity.first_name,
                last_name=identity.last_name,
                image_url=identity.image_url
            )
            logger.info(f"User {identity.user_id} mirrored from {event_type}")
            return True

        if event_type == "user.deleted":
            self.store.delete_user(data["id"])
            logger.info(f"User {data['id']} deleted")
            return True

        logger.info(f"Unhandled webhook event type: {event_type}")
        return False

    # === Categories ===

    def get_categories(self) -> List[Dict[str, Any]]:
        """Get all available categories."""
        return self.store.get_all_categories()

    def _require_category(self, category_id: Any) -> int:
        try:
            category_id = int(category_id)
        except (TypeError, ValueError):
            raise ValidationError("Invalid category")
        if self.store.get_category(category_id) is None:
            raise ValidationError("Invalid category")
        return category_id

    # === Transactions ===

    def _validate_transaction(self, data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
        """Validate transaction input and return the normalised fields."""
        if not partial and any(_is_blank(data.get(f)) for f in REQUIRED_TRANSACTION_FIELDS):
            raise ValidationError("Missing required fields")

        fields: Dict[str, Any] = {}

        if "amount" in data and data["amount"] is not None:
            try:
                amount = float(data["amount"])
            except (TypeError, ValueError):
                raise ValidationError("Invalid amount")
            if not math.isfinite(amount) or amount <= 0:
                raise ValidationError("Invalid amount")
            fields["amount"] = amount

        if "type" in data and data["type"] is not None:
            if data["type"] not in TRANSACTION_TYPES:
                raise ValidationError("Invalid transaction type")
            fields["type"] = data["type"]

        if "description" in data and data["description"] is not None:
            if _is_blank(data["description"]):
                raise ValidationError("Missing required fields")
            fields["description"] = str(data["description"]).strip()

        if "category_id" in data and data["category_id"] is not None:
            fields["category_id"] = self._require_category(data["category_id"])

        if "transaction_date" in data and data["transaction_date"] is not None:
            try:
                fields["transaction_date"] = date.fromisoformat(str(data["transaction_date"])).isoformat()
            except ValueError:
                raise ValidationError("Invalid transaction date")

        return fields

    def get_transactions(
        self,
        user_id: str,
        search: Optional[str] = None,
        txn_type: Optional[str] = None,
        category_id: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """A user's transactions, newest first, with optional filters."""
        transactions = self.store.get_transactions(user_id)
        return aggregation.filter_transactions(transactions, search, txn_type, category_id)

    def get_transaction(self, user_id: str, txn_id: int) -> Optional[Dict[str, Any]]:
        """Get a transaction if it belongs to the user."""
        txn = self.store.get_transaction(txn_id)
        if txn is None or txn["user_id"] != user_id:
            return None
        return txn

    def create_transaction(self, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Validate and record a transaction.

        Raises:
            ValidationError: On missing fields, non-positive amount, unknown
                type, category or malformed date
        """
        fields = self._validate_transaction(data)
        self.ensure_user_exists(user_id)
        txn_id = self.store.add_transaction(
            user_id=user_id,
            amount=fields["amount"],
            txn_type=fields["type"],
            description=fields["description"],
            transaction_date=fields["transaction_date"],
            category_id=fields["category_id"]
        )
        logger.info(f"Recorded {fields['type']} transaction {txn_id} for user {user_id}")
        return self.store.get_transaction(txn_id)

    def update_transaction(
        self,
        user_id: str,
        txn_id: int,
        data: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """Update a user's transaction. Returns None if not found."""
        if self.get_transaction(user_id, txn_id) is None:
            return None
        fields = self._validate_transaction(data, partial=True)
        if fields:
            self.store.update_transaction(txn_id, **fields)
        return self.store.get_transaction(txn_id)

    def delete_transaction(self, user_id: str, txn_id: int) -> bool:
        """Delete a user's transaction. Returns False if not found."""
        if self.get_transaction(user_id, txn_id) is None:
            return False
        return self.store.delete_transaction(txn_id)

    def export_transactions_csv(self, transactions: List[Dict[str, Any]]) -> str:
        """Render transactions as CSV (Date, Description, Category, Type, Amount)."""
        rows = [
            {
                "Date": t["transaction_date"],
                "Description": t["description"],
                "Category": aggregation.category_name(t),
                "Type": t["type"],
                "Amount": t["amount"],
            }
            for t in transactions
        ]
        return pd.DataFrame(rows, columns=EXPORT_COLUMNS).to_csv(index=False)

    # === Budgets ===

    def _validate_budget(self, data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}

        if not partial and (_is_blank(data.get("category_id")) or _is_blank(data.get("amount"))):
            raise ValidationError("Missing required fields")

        if data.get("amount") is not None:
            try:
                amount = float(data["amount"])
            except (TypeError, ValueError):
                raise ValidationError("Invalid amount")
            if not math.isfinite(amount) or amount <= 0:
                raise ValidationError("Invalid amount")
            fields["amount"] = amount

        period = data.get("period")
        if period is None and not partial:
            period = "monthly"
        if period is not None:
            if period not in BUDGET_PERIODS:
                raise ValidationError("Invalid budget period")
            fields["period"] = period

        if data.get("category_id") is not None:
            fields["category_id"] = self._require_category(data["category_id"])

        return fields

    def get_budgets(self, user_id: str) -> List[Dict[str, Any]]:
        return self.store.get_budgets(user_id)

    def get_budget(self, user_id: str, budget_id: int) -> Optional[Dict[str, Any]]:
        """Get a budget if it belongs to the user."""
        budget = self.store.get_budget(budget_id)
        if budget is None or budget["user_id"] != user_id:
            return None
        return budget

    def create_budget(
        self,
        user_id: str,
        data: Dict[str, Any],
        today: Optional[date] = None
    ) -> Dict[str, Any]:
        """Create a budget for the current month or year.

        Raises:
            ValidationError: On invalid input
            DuplicateBudgetError: If the category already has a budget for the period
        """
        today = today or date.today()
        fields = self._validate_budget(data)

        if self.store.find_budget(user_id, fields["category_id"], fields["period"]):
            raise DuplicateBudgetError(f"A {fields['period']} budget already exists for this category")

        self.ensure_user_exists(user_id)
        start_date, end_date = aggregation.period_window(fields["period"], today)
        budget_id = self.store.add_budget(
            user_id=user_id,
            category_id=fields["category_id"],
            amount=fields["amount"],
            period=fields["period"],
            start_date=start_date,
            end_date=end_date
        )
        logger.info(f"Created {fields['period']} budget {budget_id} for user {user_id}")
        return self.store.get_budget(budget_id)

    def update_budget(
        self,
        user_id: str,
        budget_id: int,
        data: Dict[str, Any],
        today: Optional[date] = None
    ) -> Optional[Dict[str, Any]]:
        """Update a user's budget; the validity window is recomputed from today."""
        today = today or date.today()
        budget = self.get_budget(user_id, budget_id)
        if budget is None:
            return None

        fields = self._validate_budget(data, partial=True)
        category_id = fields.get("category_id", budget["category_id"])
        period = fields.get("period", budget["period"])

        existing = self.store.find_budget(user_id, category_id, period)
        if existing and existing["id"] != budget_id:
            raise DuplicateBudgetError(f"A {period} budget already exists for this category")

        fields["start_date"], fields["end_date"] = aggregation.period_window(period, today)
        self.store.update_budget(budget_id, **fields)
        return self.store.get_budget(budget_id)

    def delete_budget(self, user_id: str, budget_id: int) -> bool:
        """Delete a user's budget. Returns False if not found."""
        if self.get_budget(user_id, budget_id) is None:
            return False
        return self.store.delete_budget(budget_id)

    # === Snapshots and views ===

    def _safe_read(self, label: str, fetch: Callable[..., List[Dict[str, Any]]], *args) -> List[Dict[str, Any]]:
        """Run a store read; on failure log it and return an empty list."""
        try:
            return fetch(*args)
        except sqlite3.Error as e:
            logger.error(f"Error fetching {label}: {e}")
            return []

    async def load_snapshot(self, user_id: str) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
        """Fetch a user's transactions and budgets concurrently."""
        transactions, budgets = await asyncio.gather(
            asyncio.to_thread(self._safe_read, "transactions", self.store.get_transactions, user_id),
            asyncio.to_thread(self._safe_read, "budgets", self.store.get_budgets, user_id),
        )
        return transactions, budgets

    def build_dashboard(
        self,
        transactions: List[Dict[str, Any]],
        budgets: List[Dict[str, Any]],
        today: Optional[date] = None
    ) -> Dict[str, Any]:
        """Current-month totals, budget progress, recent activity and chart data."""
        today = today or date.today()
        return {
            "month": aggregation.month_key(today),
            **aggregation.summarize(transactions, aggregation.month_key(today)),
            "budgets": aggregation.budget_overview(budgets, transactions, today),
            "recent_transactions": transactions[:RECENT_TRANSACTIONS],
            "monthly_spending": aggregation.monthly_expense_series(transactions),
            "category_spending": aggregation.category_breakdown(transactions),
        }

    def build_analytics(
        self,
        transactions: List[Dict[str, Any]],
        budgets: List[Dict[str, Any]],
        today: Optional[date] = None
    ) -> Dict[str, Any]:
        return aggregation.spending_analytics(transactions, budgets, today)

    def build_budget_overview(
        self,
        transactions: List[Dict[str, Any]],
        budgets: List[Dict[str, Any]],
        today: Optional[date] = None
    ) -> Dict[str, Any]:
        return aggregation.budget_overview(budgets, transactions, today)

    async def generate_insights(self, user_id: str) -> Dict[str, Any]:
        """Load the user's data and produce a FinancialInsight."""
        transactions, budgets = await self.load_snapshot(user_id)
        return await asyncio.to_thread(self.insight_generator.generate, transactions, budgets)
