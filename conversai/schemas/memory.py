from pydantic import BaseModel, Field
from typing import Any, Dict, List

class MemoryListResponse(BaseModel):
    memories: List[Dict[str, Any]] = Field(default_factory=list)

class SuccessResponse(BaseModel):
    success: bool = True
