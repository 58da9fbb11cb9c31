import asyncio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from sqlalchemy.exc import SQLAlchemyError

from drop_service.database import engine
from drop_service.exceptions import register_exception_handlers
from drop_service.models import Base
from drop_service.routers import entries as entries_router
from drop_service.routers import storage as storage_router
from drop_service.storage import build_object_store
from drop_service.logging_config import get_logger
from drop_service.config import settings

logger = get_logger(__name__)

async def create_db_and_tables(db_engine=engine, retries: int = None, backoff_seconds: float = None):
    retries = max(retries if retries is not None else settings.DB_CONNECT_RETRIES, 1)
    backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.DB_CONNECT_BACKOFF_SECONDS
    for attempt in range(1, retries + 1):
        try:
            async with db_engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables created or already exist.")
            return
        except (OSError, SQLAlchemyError) as e:
            if attempt == retries:
                logger.critical(f"Database unreachable after {retries} attempt(s), giving up: {e}")
                raise
            delay = backoff_seconds * 2 ** (attempt - 1)
            logger.warning(f"Database not ready (attempt {attempt}/{retries}): {e}. Retrying in {delay:.1f}s")
            await asyncio.sleep(delay)

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Drop Service starting up...")
    await create_db_and_tables()
    app.state.object_store = build_object_store(settings)
    logger.info(f"Upload prefix: '{settings.UPLOAD_KEY_PREFIX}', max upload size: {settings.MAX_UPLOAD_SIZE_BYTES} bytes")
    yield
    logger.info("Drop Service shutting down...")
    await engine.dispose()

app = FastAPI(
    title="Drop Service",
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(entries_router.router)
app.include_router(storage_router.router)

@app.get("/ping")
async def ping():
    return {"ping": "pong! from Drop Service"}

@app.get("/")
async def read_root():
    return {"message": "Welcome to the Drop Service API"}

def run():
    import uvicorn
    logger.info(f"Starting Drop Service on {settings.DROP_HOST}:{settings.DROP_PORT}")
    uvicorn.run("drop_service.main:app", host=settings.DROP_HOST, port=settings.DROP_PORT)

if __name__ == "__main__":
    run()
