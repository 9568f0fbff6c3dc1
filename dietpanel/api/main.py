"""
API router aggregation.

Every area module defines its own ``APIRouter`` with a path prefix; this
router collects them and is mounted by ``dietpanel.main`` under API_V1_STR.

Route modules:
- auth: login, logout, session, signup, password reset
- invitations: dietitian invitations (create, resend) and token validation
- patients: dietitian patient management
- weight: patient weight entries
- pzk: PZK zone (access, catalog, materials, notes, reviews, purchase)
- utils: health check
"""
from fastapi import APIRouter

from dietpanel.api.routes import auth, invitations, patients, pzk, utils, weight

api_router = APIRouter()

api_router.include_router(auth.router)  # /auth/*
api_router.include_router(invitations.router)  # /dietitian/invitations, /invitations/*
api_router.include_router(patients.router)  # /dietitian/patients/*
api_router.include_router(weight.router)  # /weight/*
api_router.include_router(pzk.router)  # /pzk/* (patient session)
api_router.include_router(pzk.public_router)  # /pzk/purchase/callback, /pzk/reviews/public
api_router.include_router(utils.router)  # /utils/*
