from fastapi import APIRouter
from checkout.api.v1 import checkout

api_router = APIRouter(prefix="/v1")
api_router.include_router(checkout.router, prefix="/checkout", tags=["checkout"])
