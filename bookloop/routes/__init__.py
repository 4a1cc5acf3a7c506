from fastapi import APIRouter
from .users import router as users_router
from .sessions import router as sessions_router
from .admin import router as admin_router

router = APIRouter()
router.include_router(users_router, prefix='/users', tags=['users'])
router.include_router(sessions_router, prefix='/sessions', tags=['sessions'])
router.include_router(admin_router, prefix='/admin', tags=['admin'])
