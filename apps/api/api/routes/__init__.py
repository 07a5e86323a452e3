from fastapi import APIRouter

from .chat import router as chat_router
from .deploy import router as deploy_router
from .models import router as models_router
from .system import router as system_router

router = APIRouter()
router.include_router(deploy_router)
router.include_router(models_router)
router.include_router(chat_router)
router.include_router(system_router)
