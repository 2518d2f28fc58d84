"""API router for v1 endpoints."""

from fastapi import APIRouter

from invoice_transform.api import clients, documents, transform

router = APIRouter()

# Client name resolution
router.include_router(clients.router, tags=["clients"])

# Source document lookup and search
router.include_router(documents.router, tags=["documents"])

# Transforms and transform jobs
router.include_router(transform.router, tags=["transform"])
