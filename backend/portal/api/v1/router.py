"""API v1 router aggregator.

All v1 endpoint routers are included here and mounted at /api/v1.
"""

from fastapi import APIRouter

from portal.api.v1 import admin, auth, setup

router = APIRouter()

# =============================================================================
# Authentication
# =============================================================================

router.include_router(auth.router, prefix="/auth", tags=["auth"])

# =============================================================================
# Platform setup and administration
# =============================================================================

router.include_router(setup.router, prefix="/setup", tags=["setup"])
router.include_router(admin.router, prefix="/admin", tags=["admin"])
