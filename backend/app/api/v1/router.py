from fastapi import APIRouter
from backend.app.api.v1 import budgets, envelopes
from backend.app.api.v1.transactions import router as transactions_router, budget_transactions_router

api_router = APIRouter()
api_router.include_router(budgets.router, prefix="/budgets", tags=["budgets"])
api_router.include_router(budget_transactions_router, prefix="/budgets", tags=["transactions"])
api_router.include_router(envelopes.router, prefix="/envelopes", tags=["envelopes"])
api_router.include_router(transactions_router, prefix="/transactions", tags=["transactions"])
