import logging
import mimetypes
import os
import re
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from foodscan.core.errors import InputError, NotFoundError

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif")


def _ext_for(content_type: str, original_name: Optional[str]) -> str:
    if original_name:
        ext = os.path.splitext(original_name)[1].lower()
        if re.fullmatch(r"\.[a-z0-9]{1,5}", ext):
            return ext
    guessed = mimetypes.guess_extension(content_type or "")
    if guessed == ".jpe":
        guessed = ".jpg"
    return guessed or ".png"


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


class UploadStore:
    """
    Write-once upload directory.
    Each save gets a fresh generated name, so concurrent uploads never collide.
    """

    def __init__(self, upload_dir: str, max_bytes: int = 10 * 1024 * 1024):
        self.root = Path(upload_dir)
        self.max_bytes = max_bytes

    def save(
        self,
        content: bytes,
        content_type: Optional[str],
        original_name: Optional[str] = None,
        timestamp: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not content_type or not content_type.lower().startswith("image/"):
            raise InputError("Only image files are allowed!")
        if not content:
            raise InputError("No image file provided")
        if len(content) > self.max_bytes:
            limit = f"{self.max_bytes // (1024 * 1024)}MB" if self.max_bytes >= 1024 * 1024 else f"{self.max_bytes} bytes"
            raise InputError(f"File too large (max {limit})")

        self.root.mkdir(parents=True, exist_ok=True)

        ms = int(time.time() * 1000)
        filename = f"food-scan-{ms}-{uuid.uuid4().hex[:8]}{_ext_for(content_type, original_name)}"
        path = self.root / filename

        # "xb" fails instead of overwriting if a name ever repeats
        with open(path, "xb") as f:
            f.write(content)

        info = {
            "id": str(ms),
            "filename": filename,
            "originalname": original_name,
            "size": len(content),
            "timestamp": timestamp or datetime.now(timezone.utc).isoformat(),
            "status": "uploaded",
        }
        logger.info("Image uploaded: %s (%s bytes)", filename, len(content))
        return info

    def resolve(self, filename: Optional[str]) -> Path:
        name = (filename or "").strip()
        if not name:
            raise InputError("filename is required")
        if name != os.path.basename(name) or name in (".", ".."):
            raise InputError("Invalid filename")

        path = self.root / name
        if not path.is_file():
            raise NotFoundError(f"Image not found: {name}")
        return path

    def list_images(self) -> List[Dict[str, Any]]:
        if not self.root.is_dir():
            return []

        images = []
        for p in self.root.iterdir():
            if not p.is_file() or p.suffix.lower() not in IMAGE_EXTENSIONS:
                continue
            st = p.stat()
            images.append(
                {
                    "filename": p.name,
                    "size": st.st_size,
                    "created": st.st_ctime,
                    "modified": st.st_mtime,
                }
            )

        # Newest first
        images.sort(key=lambda x: x["modified"], reverse=True)
        for img in images:
            img["created"] = _iso(img["created"])
            img["modified"] = _iso(img["modified"])
        return images


def content_type_for(path: Path) -> str:
    return mimetypes.guess_type(path.name)[0] or "image/png"
