# storage.py - Supabase Storage Utilities
import uuid
from typing import List, NamedTuple, Sequence, Tuple
from supabase import Client
from config import settings
from errors import BackendFailure
import logging

logger = logging.getLogger(__name__)

class UploadResult(NamedTuple):
    successful: List[dict]
    failed: List[dict]

def upload_image(client: Client, file_bytes: bytes, file_ext: str, folder: str = "issues") -> str:
    """
    Upload image to Supabase Storage

    Args:
        client: Supabase client
        file_bytes: Image bytes
        file_ext: File extension (jpg, png, etc.)
        folder: Folder inside the bucket

    Returns:
        str: Public URL of uploaded image
    """
    try:
        file_name = f"{folder}/{uuid.uuid4()}.{(file_ext or 'jpg').lower()}"

        bucket = client.storage.from_(settings.SUPABASE_BUCKET_NAME)
        bucket.upload(file_name, file_bytes)
        public_url = bucket.get_public_url(file_name)

        logger.info(f"Image uploaded successfully: {file_name}")
        return public_url

    except Exception as e:
        logger.error(f"Upload failed: {e}")
        raise BackendFailure(f"Failed to upload image: {e}", cause=e)

def upload_multiple_images(client: Client, files: Sequence[Tuple[bytes, str]], folder: str = "issues") -> UploadResult:
    """
    Upload several images, continuing past individual failures

    Args:
        files: (bytes, extension) pairs

    Returns:
        UploadResult: successful [{index, url}] and failed [{index, error}]
    """
    successful, failed = [], []
    for index, (file_bytes, file_ext) in enumerate(files):
        try:
            url = upload_image(client, file_bytes, file_ext, folder)
            successful.append({"index": index, "url": url})
        except BackendFailure as e:
            failed.append({"index": index, "error": e.message})

    if failed:
        logger.warning(f"{len(failed)} of {len(files)} images failed to upload")
    return UploadResult(successful=successful, failed=failed)

def delete_image(client: Client, file_path: str) -> bool:
    """
    Delete image from Supabase Storage

    Args:
        file_path: Path/name of file in storage

    Returns:
        bool: Success status
    """
    try:
        client.storage.from_(settings.SUPABASE_BUCKET_NAME).remove([file_path])
        logger.info(f"Image deleted: {file_path}")
        return True
    except Exception as e:
        logger.error(f"Delete failed: {e}")
        return False
