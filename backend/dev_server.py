#!/usr/bin/env python3
"""
Simple dev server launcher for the Snow Shield backend.

Usage:
    cd backend
    python dev_server.py

This is a convenience wrapper around uvicorn for development.
For production, use the full uvicorn command with proper settings.
"""
import os
import sys

# Ensure the backend directory is importable when run from elsewhere
backend_dir = os.path.dirname(os.path.abspath(__file__))
if backend_dir not in sys.path:
    sys.path.insert(0, backend_dir)

if __name__ == "__main__":
    import uvicorn

    os.environ.setdefault("ENV", "dev")

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))

    print("Starting Snow Shield Backend in DEV mode")
    print(f"Server will be available at http://{host}:{port}")
    print(f"API docs at http://{host}:{port}/docs")
    print()

    uvicorn.run(
        "snowshield.main:app",
        host=host,
        port=port,
        reload=True,
        log_level="info"
    )
