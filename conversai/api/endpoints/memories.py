from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional
from conversai.api.deps import get_memory_service
from conversai.core.exceptions import MissingParameterError
from conversai.schemas.memory import MemoryListResponse, SuccessResponse
from conversai.services.memory import MemoryService
import logging

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Memories"])


@router.get("/{user_id}",
    response_model=MemoryListResponse,
    description="List the long-term memories stored for a user")
async def list_memories(
    user_id: str,
    memory_service: MemoryService = Depends(get_memory_service)
) -> MemoryListResponse:
    logger.info(f"Fetching memories for user {user_id}")
    try:
        memories = await memory_service.list_memories(user_id)
    except Exception as e:
        logger.error(f"Failed to fetch memories for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch memories")
    return MemoryListResponse(memories=memories)


@router.delete("/{user_id}",
    response_model=SuccessResponse,
    description="Delete one memory")
async def delete_memory(
    user_id: str,
    memory_id: Optional[str] = Query(None, alias="id"),
    memory_service: MemoryService = Depends(get_memory_service)
) -> SuccessResponse:
    if not memory_id:
        raise MissingParameterError("userId", "id")

    logger.info(f"Deleting memory {memory_id} for user {user_id}")
    try:
        await memory_service.delete_memory(memory_id)
    except Exception as e:
        logger.error(f"Failed to delete memory {memory_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete memory")
    return SuccessResponse()
