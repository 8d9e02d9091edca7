"""Run the genstudio API server (uvicorn)."""

import os
import sys
from pathlib import Path

import uvicorn

sys.path.insert(0, str(Path(__file__).parent.parent))

from genstudio.config import get_settings

if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "backend.main:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", settings.port)),
        reload=os.environ.get("GENSTUDIO_ENV", "development") == "development",
        log_level="info",
    )
