from pydantic import BaseModel
from typing import List, Optional

class UploadedFile(BaseModel):
    id: str
    name: str
    url: str
    type: Optional[str] = None

class UploadResponse(BaseModel):
    files: List[UploadedFile]
