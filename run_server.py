#!/usr/bin/env python3
"""
Run script for the scope sheet service.

Usage:
    python run_server.py

Copy .env.example to .env to change the host, port or database path.
"""

import logging
import os
import sys

# Configure logging before any imports that might use it
logging.getLogger("python_multipart").setLevel(logging.WARNING)
logging.getLogger("python_multipart.multipart").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)

# Add src to path for imports
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def main():
    """Run the scope sheet server."""
    import uvicorn
    from src.utils.config import settings

    print("=" * 60)
    print("Claim Scope Sheet Service")
    print("=" * 60)
    print(f"Server: http://{settings.host}:{settings.port}")
    print(f"Database: {settings.scope_sheet_db_path}")
    print(f"Link validity: {settings.magic_link_ttl_days} days")
    print("=" * 60)
    print()
    print("Endpoints:")
    print(f"  - Health: http://{settings.host}:{settings.port}/health")
    print("  - Issue link: POST /api/claims/{claim_id}/magic-link")
    print("  - Validate link: GET /api/magic-links/{token}/validate")
    print("  - Draft: GET/POST /api/magic-links/{token}/scope-sheet/draft")
    print("  - Submit: POST /api/magic-links/{token}/scope-sheet")
    print()

    uvicorn.run(
        "src.server.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info",
    )


if __name__ == "__main__":
    main()
