#!/usr/bin/env python3
"""
mdpress API entry point for local development
"""
import uvicorn
import os

if __name__ == "__main__":
    # Configuration
    port = int(os.getenv("PORT", "8000"))
    host = os.getenv("HOST", "0.0.0.0")
    reload = os.getenv("RELOAD", "false").lower() == "true"

    uvicorn.run(
        "mdpress.main:app",
        host=host,
        port=port,
        reload=reload,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
        access_log=True,
    )
