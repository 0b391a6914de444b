import os

from fastapi import APIRouter, Depends

from foodscan.api.deps import get_settings
from foodscan.core.config import Settings

router = APIRouter(prefix="/api", tags=["meta"])


@router.get("/version")
def version(s: Settings = Depends(get_settings)):
    return {
        "version": s.APP_VERSION,
        "build": s.BUILD_ID,
        "git_commit": os.environ.get("GIT_COMMIT"),
    }
