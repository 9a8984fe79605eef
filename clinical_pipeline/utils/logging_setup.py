"""Process-wide logging configuration."""

import logging


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging with the shared format."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(),
        ]
    )
