import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

logger = logging.getLogger("rent_savings")
logger.setLevel(os.getenv("LOG_LEVEL", "INFO"))

# Basic format: time - level - message
formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")

log_dir = Path(os.getenv("LOG_DIR", Path(__file__).parent.parent.parent / "logs"))
log_dir.mkdir(parents=True, exist_ok=True)

# Rotating file handler (2MB max size, keep 5 backup files)
rotating_handler = RotatingFileHandler(
    log_dir / "app.log",
    maxBytes=2 * 1024 * 1024,
    backupCount=5,
    encoding="utf-8",
)
rotating_handler.setFormatter(formatter)
logger.addHandler(rotating_handler)

console_handler = logging.StreamHandler()
console_handler.setFormatter(formatter)
logger.addHandler(console_handler)
