"""
Worldsim Job Manager Launcher
Loads the project .env file and serves the job manager API with uvicorn.
"""
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

import uvicorn


def load_environment() -> Path | None:
    """Load ``.env`` from the project root if present."""
    project_root = Path(__file__).parent.parent.parent
    env_path = project_root / ".env"
    if env_path.exists():
        load_dotenv(env_path)
        print(f"[worldsim] Loaded environment from: {env_path}")
        return env_path
    print(f"[worldsim] No .env file at {env_path}, using process environment")
    return None


def main():
    print("=" * 70)
    print("worldsim - background job manager")
    print("=" * 70)
    load_environment()

    logging.basicConfig(
        level=os.getenv("WORLDSIM_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    host = os.getenv("WORLDSIM_HOST", "127.0.0.1")
    port = int(os.getenv("WORLDSIM_PORT", "8020"))
    print(f"[worldsim] Serving on http://{host}:{port}")
    try:
        uvicorn.run(
            "worldsim.job_manager.app:create_app",
            factory=True,
            host=host,
            port=port,
            log_level=os.getenv("WORLDSIM_LOG_LEVEL", "info").lower(),
        )
    except KeyboardInterrupt:
        print("[worldsim] Shutting down")


if __name__ == "__main__":
    main()
