#!/usr/bin/env python3
"""
Run the Pothole Map API.
Set NAVER_CLIENT_ID / NAVER_CLIENT_SECRET in environment (or .env) for real addresses;
otherwise reports are addressed by their coordinates. DEDUP_RADIUS_M tunes the match radius.
"""
import logging
import os

from dotenv import load_dotenv
import uvicorn

load_dotenv()

logger = logging.getLogger("pothole_api.run")

if __name__ == "__main__":
    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", 8000))
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    logger.info("starting on %s:%d (dedup radius %s m)", host, port, os.environ.get("DEDUP_RADIUS_M", "1.0"))
    uvicorn.run(
        "api.main:app",
        host=host,
        port=port,
        reload=os.environ.get("RELOAD", "0") == "1",
    )
