from fastapi import APIRouter
from .cron import router as cron_router
from .monitors import router as monitors_router

router = APIRouter()
router.include_router(cron_router)
router.include_router(monitors_router)
