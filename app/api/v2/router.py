from fastapi import APIRouter
from app.api.v2 import (
    appointments,
    timeslots,
)

api_router = APIRouter()

# Include all v2 routers
api_router.include_router(appointments.router, prefix="/appointments", tags=["appointments"])
api_router.include_router(timeslots.router, prefix="/timeslots", tags=["timeslots"])
