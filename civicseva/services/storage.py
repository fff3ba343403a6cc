import os
import uuid
import logging
from typing import Optional
from fastapi import UploadFile
from civicseva.config.settings import settings
from supabase import create_client, Client

logger = logging.getLogger(__name__)

_client: Optional[Client] = None

def get_supabase() -> Optional[Client]:
    """Storage client, created on first use; None when Supabase is not configured."""
    global _client
    if _client is None and settings.SUPABASE_URL and settings.SUPABASE_SERVICE_KEY:
        _client = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_KEY)
    return _client

async def upload_media_file(file: UploadFile, folder: str) -> Optional[str]:
    """
    Upload a file to the Supabase media bucket
    Returns the public URL of the uploaded file, or None if the upload failed
    """
    supabase = get_supabase()
    if supabase is None:
        logger.warning("Supabase storage is not configured")
        return None

    try:
        # Generate a unique filename
        file_extension = os.path.splitext(file.filename or "")[1]
        full_path = f"{folder}/{uuid.uuid4()}{file_extension}"

        contents = await file.read()
        await file.seek(0)  # Reset file pointer

        bucket = supabase.storage.from_(settings.MEDIA_BUCKET)
        bucket.upload(
            path=full_path,
            file=contents,
            file_options={"content-type": file.content_type or "application/octet-stream"},
        )
        return bucket.get_public_url(full_path)

    except Exception as e:
        logger.error(f"Error uploading file to Supabase: {e}")
        await file.seek(0)
        return None
