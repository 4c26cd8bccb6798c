"""FastAPI backend for the finance tracker."""
import asyncio
import logging
import sqlite3
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, Optional

import requests
from fastapi import FastAPI, HTTPException, Depends, Header, Query, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from finance_tracker.api.finance_service import FinanceService, ValidationError
from finance_tracker.auth import (
    AuthenticationError,
    ClerkIdentityProvider,
    IdentityProvider,
    WebhookVerificationError,
    WebhookVerifier,
)
from finance_tracker.config import CLERK_WEBHOOK_SECRET
from finance_tracker.intelligence.insights import DATA_UNAVAILABLE_INSIGHT, FinancialInsight


logger = logging.getLogger(__name__)

# Global instances (for production use)
_service: Optional[FinanceService] = None
_identity_provider: Optional[IdentityProvider] = None


def get_service() -> FinanceService:
    """Dependency to get the finance service."""
    global _service
    if _service is None:
        _service = FinanceService()
        _service.__enter__()
    return _service


def get_identity_provider() -> IdentityProvider:
    """Dependency to get the identity provider."""
    global _identity_provider
    if _identity_provider is None:
        _identity_provider = ClerkIdentityProvider()
    return _identity_provider


def get_webhook_verifier() -> WebhookVerifier:
    """Dependency to get the webhook signature verifier."""
    if not CLERK_WEBHOOK_SECRET:
        logger.error("CLERK_WEBHOOK_SECRET is not set; cannot verify webhooks")
        raise HTTPException(status_code=500, detail="Webhook secret is not configured")
    return WebhookVerifier(CLERK_WEBHOOK_SECRET)


def get_current_user(
    authorization: Optional[str] = Header(None),
    provider: IdentityProvider = Depends(get_identity_provider)
) -> str:
    """Resolve the signed-in user's ID from the bearer token, or 401."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Unauthorized")

    token = authorization[len("bearer "):].strip()
    try:
        return provider.authenticate(token)
    except AuthenticationError as e:
        logger.info(f"Rejected session token: {e}")
        raise HTTPException(status_code=401, detail="Unauthorized")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage service lifecycle."""
    yield
    # Cleanup on shutdown
    global _service
    if _service is not None:
        _service.__exit__(None, None, None)
        _service = None


app = FastAPI(
    title="Finance Tracker API",
    description="Personal income, expense and budget tracking with AI insights",
    version="1.0.0",
    lifespan=lifespan
)


@app.exception_handler(sqlite3.Error)
async def store_error_handler(request: Request, exc: sqlite3.Error):
    logger.error(f"Store error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# === Pydantic Models ===

class UserUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None


# Fields are loosely typed so validation messages come from the service
class TransactionCreate(BaseModel):
    amount: Any = None
    description: Any = None
    category_id: Any = None
    transaction_date: Any = None
    type: Any = None


class TransactionUpdate(TransactionCreate):
    pass


class BudgetCreate(BaseModel):
    category_id: Any = None
    amount: Any = None
    period: Optional[str] = None


class BudgetUpdate(BudgetCreate):
    pass


# === Users ===

@app.get("/api/users")
def sync_current_user(
    user_id: str = Depends(get_current_user),
    provider: IdentityProvider = Depends(get_identity_provider),
    service: FinanceService = Depends(get_service)
):
    """Create or refresh the local user from the identity provider's profile."""
    try:
        identity = provider.get_identity(user_id)
    except requests.RequestException as e:
        logger.error(f"Error fetching profile for {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    if identity is None:
        raise HTTPException(status_code=404, detail="User not found")
    return service.sync_user(identity)


@app.put("/api/users")
def update_current_user(
    updates: UserUpdate,
    user_id: str = Depends(get_current_user),
    service: FinanceService = Depends(get_service)
):
    """Update the signed-in user's name."""
    user = service.update_profile(user_id, updates.first_name, updates.last_name)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


# === Categories ===

@app.get("/api/categories")
def get_categories(
    user_id: str = Depends(get_current_user),
    service: FinanceService = Depends(get_service)
):
    """Get list of all categories."""
    return service.get_categories()


# === Transactions ===

@app.get("/api/transactions")
def get_transactions(
    search: Optional[str] = Query(None, description="Search in description and category"),
    type: Optional[str] = Query(None, pattern="^(all|income|expense)$"),
    category_id: Optional[int] = None,
    user_id: str = Depends(get_current_user),
    service: FinanceService = Depends(get_service)
):
    """Get the user's transactions, newest first."""
    service.ensure_user_exists(user_id)
    return service.get_transactions(user_id, search=search, txn_type=type, category_id=category_id)


@app.post("/api/transactions", status_code=201)
def create_transaction(
    transaction: TransactionCreate,
    user_id: str = Depends(get_current_user),
    service: FinanceService = Depends(get_service)
):
    """Record a new income or expense."""
    try:
        return service.create_transaction(user_id, transaction.model_dump())
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/api/transactions/export")
def export_transactions(
    search: Optional[str] = None,
    type: Optional[str] = Query(None, pattern="^(all|income|expense)$"),
    category_id: Optional[int] = None,
    user_id: str = Depends(get_current_user),
    service: FinanceService = Depends(get_service)
):
    """Download the (filtered) transactions as CSV."""
    transactions = service.get_transactions(user_id, search=search, txn_type=type, category_id=category_id)
    filename = f"transactions-{date.today().isoformat()}.csv"
    return Response(
        content=service.export_transactions_csv(transactions),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


@app.get("/api/transactions/{txn_id}")
def get_transaction(
    txn_id: int,
    user_id: str = Depends(get_current_user),
    service: FinanceService = Depends(get_service)
):
    """Get a single transaction by ID."""
    txn = service.get_transaction(user_id, txn_id)
    if txn is None:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return txn


@app.put("/api/transactions/{txn_id}")
def update_transaction(
    txn_id: int,
    updates: TransactionUpdate,
    user_id: str = Depends(get_current_user),
    service: FinanceService = Depends(get_service)
):
    """Edit a transaction."""
    try:
        txn = service.update_transaction(user_id, txn_id, updates.model_dump(exclude_unset=True))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if txn is None:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return txn


@app.delete("/api/transactions/{txn_id}")
def delete_transaction(
    txn_id: int,
    user_id: str = Depends(get_current_user),
    service: FinanceService = Depends(get_service)
):
    """Delete a transaction."""
    if not service.delete_transaction(user_id, txn_id):
        raise HTTPException(status_code=404, detail="Transaction not found")
    return {"success": True}


# === Budgets ===

@app.get("/api/budgets")
async def get_budgets(
    user_id: str = Depends(get_current_user),
    service: FinanceService = Depends(get_service)
):
    """Get the user's budgets with spending progress and totals."""
    transactions, budgets = await service.load_snapshot(user_id)
    return service.build_budget_overview(transactions, budgets)


@app.post("/api/budgets", status_code=201)
def create_budget(
    budget: BudgetCreate,
    user_id: str = Depends(get_current_user),
    service: FinanceService = Depends(get_service)
):
    """Create a monthly or yearly budget for a category."""
    try:
        return service.create_budget(user_id, budget.model_dump())
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.put("/api/budgets/{budget_id}")
def update_budget(
    budget_id: int,
    updates: BudgetUpdate,
    user_id: str = Depends(get_current_user),
    service: FinanceService = Depends(get_service)
):
    """Edit a budget."""
    try:
        budget = service.update_budget(user_id, budget_id, updates.model_dump(exclude_unset=True))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if budget is None:
        raise HTTPException(status_code=404, detail="Budget not found")
    return budget


@app.delete("/api/budgets/{budget_id}")
def delete_budget(
    budget_id: int,
    user_id: str = Depends(get_current_user),
    service: FinanceService = Depends(get_service)
):
    """Delete a budget."""
    if not service.delete_budget(user_id, budget_id):
        raise HTTPException(status_code=404, detail="Budget not found")
    return {"success": True}


# === Dashboard & Analytics ===

@app.get("/api/dashboard")
async def get_dashboard(
    user_id: str = Depends(get_current_user),
    service: FinanceService = Depends(get_service)
):
    """Current month totals, budget progress, recent transactions and chart data."""
    transactions, budgets = await service.load_snapshot(user_id)
    return service.build_dashboard(transactions, budgets)


@app.get("/api/analytics")
async def get_analytics(
    user_id: str = Depends(get_current_user),
    service: FinanceService = Depends(get_service)
):
    """Month-over-month change, top categories and spending trends."""
    transactions, budgets = await service.load_snapshot(user_id)
    return service.build_analytics(transactions, budgets)


@app.post("/api/insights", response_model=FinancialInsight)
async def generate_insights(
    user_id: str = Depends(get_current_user),
    service: FinanceService = Depends(get_service)
):
    """Generate financial insights; never fails once the user is authenticated."""
    try:
        await asyncio.to_thread(service.ensure_user_exists, user_id)
        return await service.generate_insights(user_id)
    except Exception as e:
        logger.error(f"Error generating insights: {e}")
        return DATA_UNAVAILABLE_INSIGHT


# === Identity provider webhooks ===

@app.post("/api/webhooks/clerk")
async def clerk_webhook(
    request: Request,
    verifier: WebhookVerifier = Depends(get_webhook_verifier),
    service: FinanceService = Depends(get_service)
):
    """Mirror user created/updated/deleted events into the users table."""
    headers = {name: request.headers.get(name) for name in WebhookVerifier.HEADERS}
    if not all(headers.values()):
        raise HTTPException(status_code=400, detail="Error occurred -- no svix headers")

    body = await request.body()
    try:
        event = verifier.verify(body.decode("utf-8"), headers)
    except (UnicodeDecodeError, WebhookVerificationError) as e:
        logger.error(f"Error verifying webhook: {e}")
        raise HTTPException(status_code=400, detail="Error occurred")

    try:
        service.handle_user_event(event.get("type"), event.get("data") or {})
    except (sqlite3.Error, KeyError) as e:
        logger.error(f"Error processing webhook: {e}")
        raise HTTPException(status_code=500, detail="Error occurred")

    return {"message": "Webhook processed successfully"}
