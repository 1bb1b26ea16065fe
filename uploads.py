"""Product image uploads stored on local disk and served under /public/uploads."""

import os
import random
import time
from pathlib import Path
from typing import List, Optional

from fastapi import Request, UploadFile

from errors import ValidationFailed
from i18n import Translator
from logging_config import get_logger

logger = get_logger(__name__)

UPLOAD_DIR = os.getenv("UPLOAD_DIR", "public/uploads")
UPLOAD_URL_PATH = "/public/uploads"
MAX_FILE_SIZE = 5 * 1024 * 1024  # 5 MB
MAX_FILE_COUNT = 10


def ensure_upload_dir() -> Path:
    path = Path(UPLOAD_DIR)
    path.mkdir(parents=True, exist_ok=True)
    return path


def unique_filename(original: Optional[str]) -> str:
    extension = Path(original or "").suffix.lower()
    suffix = f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}"
    return f"product-{suffix}{extension}"


def get_file_url(request: Request, filename: str) -> str:
    return f"{str(request.base_url).rstrip('/')}{UPLOAD_URL_PATH}/{filename}"


def _check(files: List[UploadFile], t: Translator) -> List[bytes]:
    if len(files) > MAX_FILE_COUNT:
        raise ValidationFailed(t("fileCountLimit"))

    contents = []
    for upload in files:
        if not (upload.content_type or "").startswith("image/"):
            raise ValidationFailed(t("imageFilesAllowedOnly"))
        data = upload.file.read(MAX_FILE_SIZE + 1)
        if len(data) > MAX_FILE_SIZE:
            raise ValidationFailed(t("fileSizeLimit"))
        contents.append(data)
    return contents


def save_images(files: Optional[List[UploadFile]], request: Request, t: Translator) -> List[str]:
    """Validate every file first, then write them and return their public URLs."""
    files = [f for f in files or [] if f.filename]
    if not files:
        return []

    contents = _check(files, t)
    directory = ensure_upload_dir()
    urls = []
    for upload, data in zip(files, contents):
        filename = unique_filename(upload.filename)
        (directory / filename).write_bytes(data)
        urls.append(get_file_url(request, filename))
    logger.info("images_uploaded", count=len(urls))
    return urls
