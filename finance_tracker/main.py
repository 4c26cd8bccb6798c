#!/usr/bin/env python3
"""Finance Tracker CLI - income, expenses, budgets and insights."""
import argparse
import asyncio
import logging
import sys
from datetime import date
from pathlib import Path

from finance_tracker.api.finance_service import FinanceService
from finance_tracker.config import CURRENCY_SYMBOL
from finance_tracker.intelligence import aggregation


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S"
    )


def money(amount: float) -> str:
    return f"{CURRENCY_SYMBOL}{amount:,.2f}"


def cmd_serve(args):
    """Run the web API."""
    import uvicorn

    uvicorn.run("finance_tracker.web.api:app", host=args.host, port=args.port)
    return 0


def cmd_summary(args):
    """Show income, expense and category summary for a user."""
    with FinanceService() as service:
        transactions, _ = asyncio.run(service.load_snapshot(args.user))

    month = aggregation.month_key(date.today())
    this_month = aggregation.summarize(transactions, month)
    overall = aggregation.summarize(transactions)

    print("=" * 50)
    print("FINANCE SUMMARY")
    print("=" * 50)
    print(f"\nThis month ({month}):")
    print(f"  Income:    {money(this_month['total_income'])}")
    print(f"  Expenses:  {money(this_month['total_expenses'])}")
    print(f"  Net:       {money(this_month['net'])}")
    print(f"\nAll time ({overall['transaction_count']} transactions):")
    print(f"  Income:    {money(overall['total_income'])}")
    print(f"  Expenses:  {money(overall['total_expenses'])}")
    print(f"  Net:       {money(overall['net'])}")

    breakdown = aggregation.category_breakdown(transactions)
    if breakdown:
        print("\n" + "-" * 50)
        print("SPENDING BY CATEGORY")
        print("-" * 50)
        for entry in breakdown:
            print(f"  {entry['category']:20s}  {money(entry['amount']):>14s}")

    return 0


def cmd_budgets(args):
    """Show budget progress for a user."""
    with FinanceService() as service:
        transactions, budgets = asyncio.run(service.load_snapshot(args.user))
        overview = service.build_budget_overview(transactions, budgets)

    if not overview["budgets"]:
        print("No budgets yet.")
        return 0

    for b in overview["budgets"]:
        flag = "  OVER" if b["is_over_budget"] else ""
        print(
            f"  {b['category_name'] or 'Other':20s} {b['period']:8s} "
            f"{money(b['spent']):>12s} / {money(b['amount']):<12s} "
            f"{b['percentage']:6.1f}%{flag}"
        )

    print(f"\nTotal: {money(overview['total_spent'])} of {money(overview['total_budget'])} "
          f"({overview['spent_percentage']:.1f}%)")
    print(f"Over budget: {overview['over_budget_count']}  On track: {overview['on_track_count']}")
    return 0


def cmd_insights(args):
    """Print financial insights for a user."""
    with FinanceService() as service:
        insights = asyncio.run(service.generate_insights(args.user))

    print(insights["summary"])
    sections = [
        ("Top spending", insights["topCategories"]),
        ("Saving tips", insights["savingTips"]),
        ("Budget recommendations", insights["budgetRecommendations"]),
    ]
    for title, items in sections:
        if items:
            print(f"\n{title}:")
            for i, item in enumerate(items, 1):
                print(f"  {i}. {item}")
    return 0


def cmd_export(args):
    """Export a user's transactions to CSV."""
    with FinanceService() as service:
        transactions = service.get_transactions(args.user, txn_type=args.type)
        csv_text = service.export_transactions_csv(transactions)

    output = Path(args.output)
    output.write_text(csv_text)
    print(f"Exported {len(transactions)} transactions to {output}")
    return 0


def cmd_categories(args):
    """List all categories."""
    with FinanceService() as service:
        categories = service.get_categories()

    print("Categories:")
    for c in categories:
        print(f"  {c['id']:3d}  {c['name']:20s}  {c['color']}  {c['icon']}")
    return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Finance Tracker - income, expenses, budgets and AI insights",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  finance serve                          Run the web API on port 8000
  finance summary --user user_123        Monthly and all-time totals
  finance budgets --user user_123        Budget progress
  finance insights --user user_123       AI (or rule-based) insights
  finance export --user user_123 -o t.csv
  finance categories                     List categories
"""
    )

    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    serve_parser = subparsers.add_parser("serve", help="Run the web API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)
    serve_parser.set_defaults(func=cmd_serve)

    summary_parser = subparsers.add_parser("summary", help="Show income and expense summary")
    summary_parser.add_argument("--user", required=True, help="User ID")
    summary_parser.set_defaults(func=cmd_summary)

    budgets_parser = subparsers.add_parser("budgets", help="Show budget progress")
    budgets_parser.add_argument("--user", required=True, help="User ID")
    budgets_parser.set_defaults(func=cmd_budgets)

    insights_parser = subparsers.add_parser("insights", help="Generate financial insights")
    insights_parser.add_argument("--user", required=True, help="User ID")
    insights_parser.set_defaults(func=cmd_insights)

    export_parser = subparsers.add_parser("export", help="Export transactions to CSV")
    export_parser.add_argument("--user", required=True, help="User ID")
    export_parser.add_argument("-o", "--output", required=True, help="Output CSV file")
    export_parser.add_argument("--type", choices=["income", "expense"], help="Only one transaction type")
    export_parser.set_defaults(func=cmd_export)

    cats_parser = subparsers.add_parser("categories", help="List all categories")
    cats_parser.set_defaults(func=cmd_categories)

    args = parser.parse_args()
    setup_logging(args.verbose)

    if not args.command:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
