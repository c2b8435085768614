from fastapi import APIRouter

from vibecode.api.v1.deploys import router as deploys_router
from vibecode.api.v1.generation import router as generation_router

v1_router = APIRouter()

v1_router.include_router(generation_router)
v1_router.include_router(deploys_router)
