#!/usr/bin/env python3
"""
Development server runner for the asset query API.

Loads .env from the project root, defaults to the single-line console log
format, and starts uvicorn with hot reloading on src/.

Usage:
    python scripts/run_dev.py
    python scripts/run_dev.py --port 8080 --log-format json
"""

import argparse
import os
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
src_path = project_root / "src"
sys.path.insert(0, str(src_path))

from dotenv import load_dotenv


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the asset query API with hot reload")
    parser.add_argument("--port", type=int, default=None, help="Override SERVER__PORT")
    parser.add_argument(
        "--log-format",
        choices=["console", "json"],
        default="console",
        help="Log renderer (default: console)",
    )
    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()

    env_file = project_root / ".env"
    if env_file.exists():
        load_dotenv(env_file)
        print(f"✓ Loaded environment variables from {env_file}")
    else:
        print(f"⚠ No .env file found at {env_file}")
        print("  Defaults expect PostgreSQL on localhost:5432 and an LLM server on 127.0.0.1:1234")

    # Exported so the reloader's worker process sees the same choices
    os.environ.setdefault("APP__LOG_FORMAT", args.log_format)
    if args.port is not None:
        os.environ["SERVER__PORT"] = str(args.port)

    import uvicorn
    from asset_query.config import get_settings

    settings = get_settings()
    server = settings.server
    query = settings.query

    print("🚀 Starting asset query API development server...")
    print(f"📊 API Documentation: http://{server.host}:{server.port}/docs")
    print(f"🤖 LLM: {settings.llm.default_model} at {settings.llm.base_url}")
    print(
        f"🔁 Attempts: {query.max_attempts}, deadline: {query.generation_deadline_seconds}s, "
        f"schema context: {'on' if query.include_schema_context else 'off'}"
    )
    print()

    uvicorn.run(
        server.app_module,
        host=server.host,
        port=server.port,
        reload=server.reload,
        reload_dirs=[str(src_path)],
        log_config=None,
        access_log=False,
    )
