"""Financial insights from Claude with a deterministic rule-based fallback."""
import json
import logging
from typing import Any, Dict, List, Optional

import anthropic
from pydantic import BaseModel, ValidationError

from finance_tracker.config import (
    CLAUDE_MODEL,
    CLAUDE_MAX_TOKENS,
    CURRENCY_SYMBOL,
    TOP_INSIGHT_CATEGORIES,
)
from finance_tracker.intelligence.aggregation import (
    group_by_category,
    sum_by_type,
    top_categories,
)


logger = logging.getLogger(__name__)


class FinancialInsight(BaseModel):
    """Shape of an insight, whether from Claude or the fallback."""

    summary: str
    topCategories: List[str]
    savingTips: List[str]
    budgetRecommendations: List[str]


INSIGHT_KEYS = tuple(FinancialInsight.model_fields.keys())

# Tips offered when the category has any spending, in this order
CATEGORY_SAVING_TIPS = [
    ("Food & Dining", "Cook at home more often to reduce food expenses"),
    ("Entertainment", "Look for free or low-cost entertainment and pause streaming services you rarely use"),
    ("Shopping", "Compare prices before making large purchases and wait a day before buying on impulse"),
]

GENERIC_SAVING_TIPS = [
    "Set up automatic transfers to a savings account",
    "Review and cancel unused subscriptions",
    "Use the 50/30/20 budgeting rule (50% needs, 30% wants, 20% savings)",
]

BUDGET_RECOMMENDATIONS = [
    "Create monthly budgets for your top spending categories",
    "Set aside 20% of your income for savings and investments",
    "Build an emergency fund covering 3-6 months of expenses",
]

MAX_SAVING_TIPS = 3

# Served by the insights endpoint when the user's data can't be loaded at all
DATA_UNAVAILABLE_INSIGHT: Dict[str, Any] = {
    "summary": (
        "We're having trouble accessing your data right now, "
        "but here are some general financial tips to get you started."
    ),
    "topCategories": [
        "Track your daily expenses to identify spending patterns",
        "Review your bank statements to categorize expenses",
        "Set up a simple budget to monitor your spending",
    ],
    "savingTips": [
        "Start with the 50/30/20 rule: 50% needs, 30% wants, 20% savings",
        "Automate your savings to build the habit",
        "Review and cancel unused subscriptions",
    ],
    "budgetRecommendations": [
        "Begin by tracking expenses for one month",
        "Set realistic budget limits for each category",
        "Review and adjust your budget monthly",
    ],
}


def format_money(amount: float) -> str:
    """Format an amount in the display currency."""
    return f"{CURRENCY_SYMBOL}{amount:.2f}"


class InsightGenerator:
    """Generate a FinancialInsight from a user's transactions and budgets."""

    def __init__(
        self,
        claude_client: Optional[Any] = None,
        api_key: Optional[str] = None,
        model: str = CLAUDE_MODEL
    ):
        """Initialize the generator.

        Args:
            claude_client: Optional Anthropic client (injected for testing)
            api_key: Anthropic API key; without it (and without a client)
                only fallback insights are produced
            model: Claude model name
        """
        self.claude_client = claude_client
        self.api_key = api_key
        self.model = model

    @property
    def has_credentials(self) -> bool:
        return self.claude_client is not None or bool(self.api_key)

    def generate(
        self,
        transactions: List[Dict[str, Any]],
        budgets: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        """Generate insights, falling back to rule-based ones on any failure.

        Args:
            transactions: Transaction rows (may be empty)
            budgets: Budget rows (may be empty)

        Returns:
            Dict with summary, topCategories, savingTips, budgetRecommendations
        """
        if not transactions or not self.has_credentials:
            return self.build_fallback(transactions)

        prompt = self.build_prompt(transactions, budgets)

        try:
            text = self._call_claude(prompt)
        except Exception as e:
            logger.error(f"Claude API error: {e}")
            return self.build_fallback(transactions)

        insight = self.parse_response(text)
        if insight is None:
            logger.warning("Claude returned an unusable insight response, using fallback")
            return self.build_fallback(transactions)

        return insight

    def build_fallback(self, transactions: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Deterministic insight computed from the transactions alone."""
        total_income = sum_by_type(transactions, "income")
        total_expenses = sum_by_type(transactions, "expense")
        net = total_income - total_expenses
        spending = group_by_category(transactions)

        if total_expenses == 0:
            summary = "No expenses recorded yet. Start tracking your spending to get personalized insights."
        elif net > 0:
            summary = (
                f"You're doing great! You've saved {format_money(net)} this period. "
                f"Your total expenses are {format_money(total_expenses)} "
                f"against income of {format_money(total_income)}."
            )
        elif net < 0:
            summary = (
                f"You're spending {format_money(abs(net))} more than your income. "
                "Consider reviewing your expenses to improve your financial health."
            )
        else:
            summary = (
                f"You're breaking even with {format_money(total_expenses)} in expenses. "
                "Look for opportunities to save and build an emergency fund."
            )

        category_analysis = [
            f"{name} accounts for {amount / total_expenses * 100:.1f}% of spending ({format_money(amount)})"
            for name, amount in top_categories(spending, TOP_INSIGHT_CATEGORIES)
        ]

        tips = [tip for name, tip in CATEGORY_SAVING_TIPS if spending.get(name, 0) > 0]
        tips += [tip for tip in GENERIC_SAVING_TIPS if tip not in tips]

        return {
            "summary": summary,
            "topCategories": category_analysis,
            "savingTips": tips[:MAX_SAVING_TIPS],
            "budgetRecommendations": list(BUDGET_RECOMMENDATIONS),
        }

    def build_prompt(
        self,
        transactions: List[Dict[str, Any]],
        budgets: List[Dict[str, Any]]
    ) -> str:
        """Build the analysis prompt for Claude."""
        total_income = sum_by_type(transactions, "income")
        total_expenses = sum_by_type(transactions, "expense")
        spending = group_by_category(transactions)

        spending_lines = "\n".join(
            f"{name}: {format_money(amount)}" for name, amount in spending.items()
        ) or "No expenses recorded"
        budget_lines = "\n".join(
            f"{b.get('category_name') or 'Other'}: {CURRENCY_SYMBOL}{b.get('amount')} ({b.get('period')})"
            for b in budgets
        ) or "No budgets set"

        return f"""Analyze the following financial data and provide insights:

Total Income: {format_money(total_income)}
Total Expenses: {format_money(total_expenses)}
Net Income: {format_money(total_income - total_expenses)}

Spending by Category:
{spending_lines}

Budget Information:
{budget_lines}

Please provide:
1. A brief financial summary (2-3 sentences)
2. Top 3 spending categories analysis
3. 3 personalized money-saving tips
4. Budget recommendations

Keep the response concise and actionable. Respond with JSON only, using exactly these keys:
{{"summary": "<text>", "topCategories": ["<text>"], "savingTips": ["<text>"], "budgetRecommendations": ["<text>"]}}"""

    def parse_response(self, text: Optional[str]) -> Optional[Dict[str, Any]]:
        """Extract an insight from Claude's reply, or None if it is unusable."""
        if not text or "{" not in text or "}" not in text:
            return None

        json_str = text[text.index("{"):text.rindex("}") + 1]
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError:
            return None

        if not isinstance(data, dict) or any(key not in data for key in INSIGHT_KEYS):
            return None

        try:
            return FinancialInsight.model_validate(data).model_dump()
        except ValidationError:
            return None

    def _call_claude(self, prompt: str) -> str:
        """Call Claude and return the text of its reply.

        This method should be mocked in tests.
        """
        if self.claude_client is None:
            self.claude_client = anthropic.Anthropic(api_key=self.api_key)

        response = self.claude_client.messages.create(
            model=self.model,
            max_tokens=CLAUDE_MAX_TOKENS,
            messages=[{"role": "user", "content": prompt}]
        )
        return response.content[0].text
