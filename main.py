#!/usr/bin/env python3
"""
Entry point for the ISP customer portal API.

Auto-reload is on by default outside production; set API_RELOAD to
override.
"""

import os

import uvicorn

from portal.config import is_production


def main() -> None:
    reload_default = "false" if is_production() else "true"
    uvicorn.run(
        "portal.main:app",
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=int(os.getenv("API_PORT", "8000")),
        reload=os.getenv("API_RELOAD", reload_default).lower() == "true",
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    main()
