"""
Server runner for the module engine API.
Usage: python -m module_engine.run_server
"""
import os
from pathlib import Path

# Load .env
env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    print(f"Loading environment from {env_path}")
    for line in env_path.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#") and "=" in line:
            key, _, value = line.partition("=")
            os.environ.setdefault(key.strip(), value.strip())


def main():
    import uvicorn
    from module_engine.api import create_app_from_env
    from module_engine.config import EngineConfig
    from module_engine.logging_config import configure_logging

    config = EngineConfig.from_env()
    configure_logging(config.log_level, config.log_format)

    print("Starting Module Engine API...")
    print(f"  MODULES_API_URL: {config.api.base_url}")
    print(f"  MODULES_API_TOKEN: {'set' if config.api.api_token else 'NOT SET'}")

    app = create_app_from_env()

    uvicorn.run(
        app,
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8001")),
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
