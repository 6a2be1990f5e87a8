import logging
import re
from logging.handlers import RotatingFileHandler
from pathlib import Path

from gdpr_kit.core.config import Settings, settings as default_settings


EMAIL_PATTERN = re.compile(r"([A-Za-z0-9_.+-])[A-Za-z0-9_.+-]*@([A-Za-z0-9-]+(?:\.[A-Za-z0-9-]+)+)")


class PersonalDataFilter(logging.Filter):
    """Masks email addresses so log files never hold them in clear text."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = EMAIL_PATTERN.sub(r"\1***@\2", message)
        if masked != message:
            record.msg = masked
            record.args = ()
        return True


def configure_logging(settings: Settings | None = None) -> None:
    settings = settings or default_settings
    log_path = Path(settings.log_path)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    if root_logger.handlers:
        return

    root_logger.setLevel(settings.log_level.upper())

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    )
    redact = PersonalDataFilter()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.addFilter(redact)

    file_handler = RotatingFileHandler(log_path, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
    file_handler.setFormatter(formatter)
    file_handler.addFilter(redact)

    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)
