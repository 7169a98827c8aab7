#!/usr/bin/env python
"""
Run script for HomeScout.
Use: python run_server.py
Or: uvicorn homescout.api.app:app --port 8000
"""
import os

import uvicorn


def main():
    """Run the API server."""
    uvicorn.run(
        "homescout.api.app:app",
        host=os.getenv("HOMESCOUT_HOST", "127.0.0.1"),
        port=int(os.getenv("HOMESCOUT_PORT", "8000")),
    )


if __name__ == "__main__":
    main()
