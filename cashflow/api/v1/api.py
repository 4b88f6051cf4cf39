"""
V1 API router aggregator — wires all endpoint modules together.
"""

from fastapi import APIRouter

from cashflow.api.v1.endpoints import auth, system, transactions, users

api_router = APIRouter()

# Auth (register, login, refresh, own profile)
api_router.include_router(auth.router)

# Ledger transactions and summaries
api_router.include_router(transactions.router)

# User administration
api_router.include_router(users.router)

# Health
api_router.include_router(system.router)
