import logging


def configure_logging(level: str = "INFO") -> None:
    """Configure logging defaults for the CLI and scripts."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
