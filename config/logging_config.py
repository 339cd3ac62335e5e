import logging
import sys
from pathlib import Path

from config import settings

# Bibliothèques tierces trop verbeuses au niveau INFO
NOISY_LOGGERS = ("kafka", "botocore", "boto3", "urllib3")
UVICORN_LOGGERS = ("uvicorn.access", "uvicorn.error")


def _log_file(service_name: str) -> Path:
    base = Path(settings.LOG_DIR) if settings.LOG_DIR else Path(__file__).resolve().parent.parent / "logs"
    service_dir = base / service_name
    service_dir.mkdir(parents=True, exist_ok=True)
    return service_dir / f"{service_name}.log"


def setup_logging(service_name: str):
    """Journalisation unifiée du service KYC : fichier dédié + sortie standard."""
    formatter = logging.Formatter(
        f'%(asctime)s - [%(levelname)s] - [{service_name}] - %(message)s'
    )
    handlers = [logging.FileHandler(_log_file(service_name), mode='a'), logging.StreamHandler(sys.stdout)]
    for handler in handlers:
        handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(getattr(logging, settings.LOG_LEVEL, logging.INFO))
    root.handlers = list(handlers)

    for name in UVICORN_LOGGERS:
        server_logger = logging.getLogger(name)
        server_logger.handlers = list(handlers)
        server_logger.propagate = False

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.info(f"Journalisation du service '{service_name}' prête (niveau {settings.LOG_LEVEL}).")
