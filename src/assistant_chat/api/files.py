"""File upload side-channel. Uploaded files are handed to the assistant backend
and referenced by id in later SendMessage calls."""

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from structlog import get_logger

from ..domain.errors import NoFilesToUpload
from ..services.orchestrator import RunOrchestrator
from .dependencies import get_orchestrator

logger = get_logger()

router = APIRouter(prefix="/api/files", tags=["files"])


@router.post("/upload", response_model=Dict[str, str])
async def upload_files(
    files: Optional[List[UploadFile]] = File(None),
    orchestrator: RunOrchestrator = Depends(get_orchestrator)
) -> Dict[str, str]:
    """Uploads each file and maps its original name to the backend file id"""
    if not files:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No files to upload")

    contents = []
    for upload in files:
        contents.append((upload.filename or "upload", await upload.read()))

    try:
        results = await orchestrator.upload_files(contents)
    except NoFilesToUpload as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error("file_upload_error", files=len(contents), error=str(e))
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to upload files")

    logger.info("files_uploaded", files=len(results))
    return results
