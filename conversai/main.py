from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorClient
from starlette.exceptions import HTTPException as StarletteHTTPException
import httpx
from conversai.core.config import settings
from conversai.api.endpoints import chat, chats, memories, upload
from conversai.services.llm import LLMClient
from conversai.services.memory import MemoryService
from conversai.services.storage import StorageService
import logging

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title="ConversAI")

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS_LIST,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type"],
    expose_headers=["X-Chat-Id"],
)

# Include routers
app.include_router(chat.router, prefix="/chat")
app.include_router(chats.router, prefix="/chats")
app.include_router(memories.router, prefix="/memories")
app.include_router(upload.router, prefix="/upload")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Errors are returned as {"error": ...}"""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None)
    )

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Invalid request to {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=400, content={"error": "Invalid request body or parameters"})


@app.get("/health")
async def health():
    return {"status": "healthy"}

@app.on_event("startup")
async def startup_clients():
    app.state.mongodb_client = AsyncIOMotorClient(settings.MONGODB_URL)
    app.state.mongodb = app.state.mongodb_client[settings.DATABASE_NAME]

    # Shared HTTP client for the LLM provider and the memory service
    app.state.http_client = httpx.AsyncClient()
    app.state.llm_client = LLMClient.from_settings(settings, app.state.http_client)
    app.state.memory_service = MemoryService.from_settings(settings, app.state.http_client)
    app.state.storage_service = StorageService(settings)

    if not app.state.storage_service.is_enabled:
        logger.warning("S3_BUCKET_NAME not configured. File uploads will fail.")
    logger.info(f"Connected services, database {settings.DATABASE_NAME}, model {settings.LLM_MODEL}")

@app.on_event("shutdown")
async def shutdown_clients():
    try:
        await app.state.http_client.aclose()
    except Exception as e:
        logger.error(f"Error closing HTTP client: {e}")

    # Close database connection
    app.state.mongodb_client.close()
