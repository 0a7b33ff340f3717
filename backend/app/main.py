"""
Campaign Assigner - FastAPI Backend
Automatic campaign assignment for regional job platform prospects
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.app.config import get_settings
from backend.app.logging_config import setup_logging
from backend.app.api.routes import (
    campaign_assignment_router,
    cron_router
)

settings = get_settings()
setup_logging()

app = FastAPI(
    title=settings.app_name,
    description="Selects prospects, personalizes them and enrolls them in Instantly campaigns",
    version=settings.app_version
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(campaign_assignment_router, prefix="/api")
app.include_router(cron_router, prefix="/api")


@app.get("/")
def root():
    """Health check"""
    return {
        "status": "online",
        "app": settings.app_name,
        "version": settings.app_version
    }


@app.get("/health")
async def health():
    """Detailed health check"""
    from backend.app.integrations.supabase import get_supabase_client

    try:
        client = await get_supabase_client()
        await client.table(settings.table_batches).select("batch_id").limit(1).execute()
        db_status = "connected"
    except Exception as e:
        db_status = f"error: {str(e)}"

    return {
        "status": "healthy" if db_status == "connected" else "unhealthy",
        "database": db_status
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
