#!/usr/bin/env python3
"""
Vision Board Engine API server launcher
"""

import uvicorn
import sys
from pathlib import Path

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

from visionboard.config import API_HOST, API_PORT, API_RELOAD, LOG_DIR

def main():
    """Start the API server"""
    print("🚀 Starting Vision Board Engine API Server...")
    print(f"📍 Host: {API_HOST}")
    print(f"🔢 Port: {API_PORT}")
    print(f"📚 API Documentation: http://localhost:{API_PORT}/docs")
    print(f"🔍 Health Check: http://localhost:{API_PORT}/health")
    print("="*50)

    Path(LOG_DIR).mkdir(exist_ok=True)

    try:
        uvicorn.run(
            "api.main:app",
            host=API_HOST,
            port=API_PORT,
            reload=API_RELOAD,
            log_level="info"
        )
    except KeyboardInterrupt:
        print("\n⚠️  Server stopped by user")
        sys.exit(0)
    except Exception as e:
        print(f"💥 Failed to start server: {e}")
        sys.exit(1)

if __name__ == "__main__":
    main()
