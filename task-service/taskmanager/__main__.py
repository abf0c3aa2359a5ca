import uvicorn

from .config import Settings
from .logging_setup import setup_logging


def main() -> None:
    settings = Settings.from_env()
    setup_logging(settings.log_level)
    uvicorn.run(
        "taskmanager.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        timeout_keep_alive=120,
        log_config=None,
    )


if __name__ == "__main__":
    main()
