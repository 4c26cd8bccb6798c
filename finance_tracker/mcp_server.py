#!/usr/bin/env python3
"""MCP Server for the finance tracker - exposes a user's finances to assistants."""
from datetime import date
from typing import Optional

from fastmcp import FastMCP

from finance_tracker.intelligence import aggregation

# Initialize MCP server
mcp = FastMCP(
    name="finance-tracker",
    instructions="""You have access to a personal finance tracker. Every tool takes the user's ID.

Use these tools to help the user understand their finances:
- get_summary: This month's and all-time income, expenses and net
- get_transactions: Recent transactions with optional type and search filters
- get_budgets: Budgets with amount spent, percentage used and over-budget flags
- get_analytics: Month-over-month change, top categories and spending trends
- generate_insights: A financial summary with saving tips and budget recommendations
- get_categories: List available categories

Amounts are in Indian rupees (₹). Amounts are always positive; 'type' says income or expense."""
)

# Lazy-load the finance service to avoid import issues at startup
_service = None


def get_service():
    """Get or create the finance service instance."""
    global _service
    if _service is None:
        from finance_tracker.api.finance_service import FinanceService
        _service = FinanceService()
        _service.__enter__()
    return _service


@mcp.tool()
async def get_summary(user_id: str) -> dict:
    """Get income, expenses and net for the current month and all time.

    Also includes spending per category.
    """
    transactions, _ = await get_service().load_snapshot(user_id)
    return {
        "this_month": aggregation.summarize(transactions, aggregation.month_key(date.today())),
        "all_time": aggregation.summarize(transactions),
        "category_spending": aggregation.category_breakdown(transactions),
    }


@mcp.tool()
def get_transactions(
    user_id: str,
    limit: int = 50,
    type: Optional[str] = None,
    search: Optional[str] = None
) -> list:
    """Get a user's transactions, newest first.

    Args:
        user_id: The user's ID
        limit: Maximum number of transactions (default 50)
        type: 'income' or 'expense' to filter by type
        search: Text to look for in description or category name
    """
    return get_service().get_transactions(user_id, search=search, txn_type=type)[:limit]


@mcp.tool()
async def get_budgets(user_id: str) -> dict:
    """Get a user's budgets with spending progress for the current period."""
    service = get_service()
    transactions, budgets = await service.load_snapshot(user_id)
    return service.build_budget_overview(transactions, budgets)


@mcp.tool()
async def get_analytics(user_id: str) -> dict:
    """Get month-over-month change, top 5 categories, and weekly and monthly trends."""
    service = get_service()
    transactions, budgets = await service.load_snapshot(user_id)
    return service.build_analytics(transactions, budgets)


@mcp.tool()
async def generate_insights(user_id: str) -> dict:
    """Generate financial insights: summary, top categories, saving tips, budget recommendations."""
    return await get_service().generate_insights(user_id)


@mcp.tool()
def get_categories() -> list:
    """Get list of all categories (name, color, icon)."""
    return get_service().get_categories()


if __name__ == "__main__":
    mcp.run()
