from fastapi import Depends, Request
from motor.motor_asyncio import AsyncIOMotorDatabase
from conversai.core.config import Settings, get_settings
from conversai.services.chat import ChatService
from conversai.services.llm import LLMClient
from conversai.services.memory import MemoryService
from conversai.services.storage import StorageService
from conversai.services.stream import ChatStreamOrchestrator

# Service handles are opened at startup and attached to app.state (see conversai.main)

def get_database(request: Request) -> AsyncIOMotorDatabase:
    return request.app.state.mongodb

def get_memory_service(request: Request) -> MemoryService:
    return request.app.state.memory_service

def get_llm_client(request: Request) -> LLMClient:
    return request.app.state.llm_client

def get_storage_service(request: Request) -> StorageService:
    return request.app.state.storage_service

def get_chat_service(db: AsyncIOMotorDatabase = Depends(get_database)) -> ChatService:
    return ChatService(db)

def get_stream_orchestrator(
    chat_service: ChatService = Depends(get_chat_service),
    memory_service: MemoryService = Depends(get_memory_service),
    llm_client: LLMClient = Depends(get_llm_client),
    settings: Settings = Depends(get_settings)
) -> ChatStreamOrchestrator:
    return ChatStreamOrchestrator(
        chat_service,
        memory_service,
        llm_client,
        max_context_tokens=settings.MAX_CONTEXT_TOKENS
    )
