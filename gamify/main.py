# gamify/main.py
import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gamify.db.mongo import init_db_indexes

# Routers
from gamify.routes.challenge import router as challenge_router
from gamify.routes.goal import router as goal_router
from gamify.routes.leaderboard import router as leaderboard_router
from gamify.routes.reward import achievements_router, badges_router
from gamify.routes.trigger import router as trigger_router
from gamify.routes.xp import router as xp_router
from gamify.services.engine import get_engine

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# ---------------------------
# Build FastAPI app
# ---------------------------
fastapi_app = FastAPI(title="Gamification Engine", version="1.0.0")

fastapi_app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@fastapi_app.get("/health")
async def health_check():
    return {"status": "OK", "message": "Gamification engine is running."}


# ---------------------------
# Routers
# ---------------------------
fastapi_app.include_router(trigger_router)
fastapi_app.include_router(achievements_router)
fastapi_app.include_router(badges_router)
fastapi_app.include_router(xp_router)
fastapi_app.include_router(leaderboard_router)
fastapi_app.include_router(challenge_router)
fastapi_app.include_router(goal_router)


# ---------------------------
# Startup / shutdown
# ---------------------------
@fastapi_app.on_event("startup")
async def on_startup():
    try:
        await init_db_indexes()
    except Exception:
        # Don't crash the app if indexes fail; just log it
        logger.exception("Index init error")


@fastapi_app.on_event("shutdown")
async def on_shutdown():
    # Let in-flight notifications and follow-up triggers finish.
    await get_engine().drain()


app = fastapi_app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))
