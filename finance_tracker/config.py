"""Configuration settings for the finance tracker."""
import os
from pathlib import Path
from typing import Dict, List

# Paths
DATA_DIR = Path(os.environ.get("FINANCE_TRACKER_HOME", Path.home() / ".finance_tracker"))
DB_PATH = Path(os.environ.get("FINANCE_TRACKER_DB", DATA_DIR / "finance.db"))

# Display
CURRENCY_SYMBOL = "₹"
UNCATEGORIZED_LABEL = "Other"
DEFAULT_CATEGORY_COLOR = "#6B7280"

# Aggregation
TOP_INSIGHT_CATEGORIES = 3  # Categories named in the fallback insight
TOP_ANALYTICS_CATEGORIES = 5
CHART_CATEGORY_LIMIT = 8
CHART_MONTHS = 6  # Monthly spending chart
TREND_MONTHS = 12  # Monthly trend on the analytics page
WEEKLY_DAYS = 7
ON_TRACK_PERCENT = 50  # Budgets above this usage (and not over) count as on track
RECENT_TRANSACTIONS = 5

# Claude API
ANTHROPIC_API_KEY = os.environ.get("ANTHROPIC_API_KEY")
CLAUDE_MODEL = os.environ.get("FINANCE_TRACKER_MODEL", "claude-3-haiku-20240307")
CLAUDE_MAX_TOKENS = 1024

# Identity provider (Clerk)
CLERK_SECRET_KEY = os.environ.get("CLERK_SECRET_KEY")
CLERK_JWKS_URL = os.environ.get("CLERK_JWKS_URL")
CLERK_API_URL = os.environ.get("CLERK_API_URL", "https://api.clerk.com/v1")
CLERK_WEBHOOK_SECRET = os.environ.get("CLERK_WEBHOOK_SECRET", "")
CLERK_REQUEST_TIMEOUT = 10  # seconds

# Default categories (name, color, icon)
DEFAULT_CATEGORIES: List[Dict[str, str]] = [
    {"name": "Food & Dining", "color": "#F59E0B", "icon": "utensils"},
    {"name": "Transportation", "color": "#F97316", "icon": "car"},
    {"name": "Shopping", "color": "#06B6D4", "icon": "shopping-bag"},
    {"name": "Entertainment", "color": "#14B8A6", "icon": "film"},
    {"name": "Bills & Utilities", "color": "#84CC16", "icon": "zap"},
    {"name": "Healthcare", "color": "#22C55E", "icon": "heart"},
    {"name": "Education", "color": "#6366F1", "icon": "book"},
    {"name": "Travel", "color": "#8B5CF6", "icon": "plane"},
    {"name": "Housing", "color": "#EF4444", "icon": "home"},
    {"name": "Salary", "color": "#10B981", "icon": "briefcase"},
    {"name": "Investments", "color": "#3B82F6", "icon": "trending-up"},
    {"name": "Other", "color": "#78716C", "icon": "circle"},
]


def ensure_data_dir() -> Path:
    """Ensure the data directory exists."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    return DATA_DIR
