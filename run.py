import os
import sys

import uvicorn

from dataroom_rag.core.config import settings

# Fix Windows console encoding, stdout only (tqdm flushes stderr and a
# reconfigured stderr raises OSError [Errno 22] on Windows).
if os.name == "nt":
    os.environ["PYTHONIOENCODING"] = "utf-8"
    if hasattr(sys.stdout, "reconfigure"):
        try:
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        except Exception:
            pass

if __name__ == "__main__":
    # Single worker: the orchestrator and its model singletons are per process
    development = settings.environment == "development"
    uvicorn.run(
        "dataroom_rag.main:app",
        host=settings.host,
        port=settings.port,
        reload=development,
        log_level="info" if development else "warning",
        access_log=development,
    )
