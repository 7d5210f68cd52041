#!/usr/bin/env python3
"""
Production server runner for the asset query API.

Conversation history is held in process memory, so the default is a
single worker. Running more requires sticky routing by session id.
"""

import sys
from pathlib import Path

# Add the src directory to the Python path
project_root = Path(__file__).parent.parent
src_path = project_root / "src"
sys.path.insert(0, str(src_path))

from dotenv import load_dotenv

env_file = project_root / ".env"
if env_file.exists():
    load_dotenv(env_file)
    print(f"✓ Loaded environment variables from {env_file}")
else:
    print(f"⚠ No .env file found at {env_file}")
    print("  Ensure environment variables are set via your deployment system")

if __name__ == "__main__":
    import uvicorn
    from asset_query.config import get_settings

    settings = get_settings()
    server_config = settings.server

    production_config = {
        "app": server_config.app_module,
        "host": server_config.host,
        "port": server_config.port,
        "workers": server_config.workers,
        "reload": False,  # Never reload in production
        "log_config": None,  # Use our structured logging
        "access_log": False,  # We handle access logging via middleware
        "server_header": False,
        "date_header": False,
        "timeout_graceful_shutdown": 30,  # Let open query streams finish
    }

    print("🚀 Starting asset query API production server...")
    print(f"🌐 Listening: {server_config.host}:{server_config.port}")
    print(f"👥 Workers: {production_config['workers']}")
    if server_config.workers > 1:
        print("⚠ Sessions are per worker; route each sessionId to the same worker")
    print()

    uvicorn.run(**production_config)
