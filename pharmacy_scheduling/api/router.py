from fastapi import APIRouter
from pharmacy_scheduling.modules.appointments.router import router as appointments_router
from pharmacy_scheduling.modules.availability.router import router as availability_router
from pharmacy_scheduling.modules.directory.router import router as directory_router
from pharmacy_scheduling.modules.scheduling.router import router as scheduling_router
from pharmacy_scheduling.modules.analytics.router import router as analytics_router
from pharmacy_scheduling.modules.notifications.router import router as notifications_router

api_router = APIRouter()
api_router.include_router(appointments_router, tags=["appointments"])
api_router.include_router(availability_router, tags=["availability"])
api_router.include_router(directory_router, tags=["directory"])
api_router.include_router(scheduling_router, tags=["scheduling"])
api_router.include_router(analytics_router, tags=["analytics"])
api_router.include_router(notifications_router, tags=["notifications"])

@api_router.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
