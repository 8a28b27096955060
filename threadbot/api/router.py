from fastapi import APIRouter

from threadbot.api.accounts import router as accounts_router
from threadbot.api.credits import router as credits_router
from threadbot.api.cron import router as cron_router
from threadbot.api.generation import router as generation_router
from threadbot.api.jobs import router as jobs_router
from threadbot.api.linking import router as linking_router
from threadbot.api.recipients import router as recipients_router
from threadbot.api.webhook import router as webhook_router

api_router = APIRouter()

# Gateway callback at /webhook/*
api_router.include_router(webhook_router, tags=["webhook"])

# API routes at /api/*
api_router.include_router(cron_router, prefix="/api", tags=["cron"])
api_router.include_router(linking_router, prefix="/api", tags=["linking"])
api_router.include_router(recipients_router, prefix="/api", tags=["recipients"])
api_router.include_router(accounts_router, prefix="/api", tags=["accounts"])
api_router.include_router(credits_router, prefix="/api", tags=["credits"])
api_router.include_router(generation_router, prefix="/api", tags=["generation"])
api_router.include_router(jobs_router, prefix="/api", tags=["jobs"])
