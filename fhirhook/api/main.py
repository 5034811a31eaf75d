from dotenv import load_dotenv

# Load environment variables first, before importing modules that depend on them
load_dotenv()

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fhirhook.db.session import Base, async_engine
from fhirhook.models import subscription  # noqa: F401  (registers the table)
from fhirhook.api.routes.subscriptions import router as subs_router
from fhirhook.api.routes.events import router as events_router
from fhirhook.api.routes.status import router as status_router
from fhirhook.api.routes.websocket import router as ws_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Auto-create all tables
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await async_engine.dispose()


app = FastAPI(
    title="FHIR Subscription Notification Service",
    version="0.1.0",
    openapi_url="/openapi.json",
    docs_url="/docs",
    lifespan=lifespan,
)

origins = [
    "http://localhost:8501", # Streamlit default dev server
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"], # Allow all methods (GET, POST, PATCH, DELETE, etc.)
    allow_headers=["*"], # Allow all headers
)

# Subscription CRUD and lifecycle operations
app.include_router(
    subs_router,
    prefix="/Subscription",
    tags=["subscriptions"],
)

# Delivery health
app.include_router(
    status_router,
    tags=["status"],
)

# Resource change ingestion
app.include_router(
    events_router,
    tags=["events"],
)

# Websocket channel stream
app.include_router(
    ws_router,
    tags=["websocket"],
)
