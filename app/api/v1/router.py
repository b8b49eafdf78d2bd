from fastapi import APIRouter
from app.api.v1.endpoints import admin, booking, payments

api_router = APIRouter()
api_router.include_router(payments.router, prefix="/booking/payments", tags=["payments"])
api_router.include_router(booking.router, prefix="/booking", tags=["booking"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
