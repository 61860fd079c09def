from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

import models  # noqa: F401  在 Base.metadata 註冊資料表
from database import Base, engine, get_settings
from api import users, timer

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: 在應用啟動時建立資料庫表
    Base.metadata.create_all(bind=engine)
    if not settings.api_token:
        logger.warning("api_token not set: participant registration is unauthenticated")
    if not settings.admin_token:
        logger.warning("admin_token not set: round control is unauthenticated")
    yield


app = FastAPI(
    title="Follower Leaderboard API",
    description="Live GitHub follower leaderboard for conference rounds",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(users.router)
app.include_router(timer.router)


@app.get("/")
def root():
    return {"message": "Follower Leaderboard API", "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
