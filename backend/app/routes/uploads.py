"""
Serves stored files back by the URL returned from the storage backend.
"""

import os
from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from app.errors import NotFoundError, ValidationError
from app.services.storage import Storage, get_storage, content_type_for

router = APIRouter()


@router.get("/api/uploads/{file_path:path}")
def serve_upload(file_path: str, storage: Storage = Depends(get_storage)):
    path = storage.resolve(file_path)
    if path is None:
        raise ValidationError("Invalid file path")
    if not os.path.isfile(path):
        raise NotFoundError("File not found")
    return FileResponse(path, media_type=content_type_for(path))
