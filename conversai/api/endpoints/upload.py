from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from typing import List, Optional
import asyncio
from conversai.api.deps import get_storage_service
from conversai.core.exceptions import BadRequestError, StorageError
from conversai.schemas.upload import UploadedFile, UploadResponse
from conversai.services.storage import StorageService
import logging

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Upload"])


@router.post("",
    response_model=UploadResponse,
    description="Upload chat attachments",
    responses={
        400: {"description": "No files uploaded"},
        500: {"description": "Object storage failure"}
    })
async def upload_files(
    files: Optional[List[UploadFile]] = File(None, alias="file"),
    storage_service: StorageService = Depends(get_storage_service)
) -> UploadResponse:
    """
    Upload one or more files (repeat the ``file`` form field) and return
    their public URLs.
    """
    if not files:
        raise BadRequestError("No files uploaded")

    async def upload(upload_file: UploadFile) -> UploadedFile:
        data = await upload_file.read()
        result = await run_in_threadpool(
            storage_service.upload_bytes,
            data,
            upload_file.filename,
            upload_file.content_type
        )
        return UploadedFile(
            id=result["id"],
            name=upload_file.filename or "file",
            url=result["url"],
            type=upload_file.content_type
        )

    try:
        uploaded = await asyncio.gather(*(upload(upload_file) for upload_file in files))
    except StorageError as e:
        logger.error(f"Error uploading files: {e}")
        raise HTTPException(status_code=500, detail="Failed to upload files")
    return UploadResponse(files=list(uploaded))
