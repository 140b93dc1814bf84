from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from app.core.config import get_settings
from app.core.logger import get_logger
from app.workers.scheduler import get_scheduler, sweep_stale_scratch
from app.services.vision_client import get_vision_client
from app.api import routes_analyze, routes_inventory, routes_health

log = get_logger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    sched = get_scheduler()
    await sched.start()
    sched.schedule(sweep_stale_scratch, interval_sec=settings.JANITOR_INTERVAL_SEC)
    try:
        yield
    finally:
        # Shutdown
        await get_scheduler().stop()
        try:
            await get_vision_client().aclose()
        except Exception:
            log.exception("Failed to close vision provider clients")


app = FastAPI(
    title="ShelfScan API",
    description="Turns shelf photos and walkthrough videos into shop inventory",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(routes_analyze.router, tags=["Analyze"])
app.include_router(routes_inventory.router, prefix="/inventory", tags=["Inventory"])
app.include_router(routes_health.router, prefix="/health", tags=["Health"])

@app.get("/")
def root():
    return {"status": "ShelfScan backend running"}
