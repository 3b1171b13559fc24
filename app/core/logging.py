import logging

from app.config import settings


def configure_logging() -> None:
    """Configure application-wide logging defaults."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    # passlib logs a harmless traceback when probing newer bcrypt builds
    logging.getLogger("passlib").setLevel(logging.ERROR)
