#!/usr/bin/env python3
"""
Commerce Hub API Startup Script

Starts the FastAPI server with auto-reload for local development.
"""

import sys
from pathlib import Path

import uvicorn


def main():
    """Start the Commerce Hub API server."""
    print("Starting Commerce Hub API server...")
    print("   Swagger UI:  http://localhost:8000/docs")
    print("   ReDoc:       http://localhost:8000/redoc")
    print("")

    env_file = Path(".env")
    if not env_file.exists():
        print("WARNING: No .env file found!")
        print("   Create .env.template and run `python generate_keys.py`")
        print("   Required: JWT_SECRET, TOKEN_ENCRYPTION_KEY, DATABASE_URL")
        print("")

    try:
        uvicorn.run(
            "commerce_hub.main:app",
            host="0.0.0.0",
            port=8000,
            reload=True,
            reload_dirs=["commerce_hub"],
            log_level="info",
        )
    except KeyboardInterrupt:
        print("\nShutting down Commerce Hub API server...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
