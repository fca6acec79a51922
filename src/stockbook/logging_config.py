from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path


DOCUMENT_LOGGERS = ("stockbook.sales", "stockbook.purchases", "stockbook.payments")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _handler(path: Path, level: int) -> RotatingFileHandler:
    fh = RotatingFileHandler(path, maxBytes=2_000_000, backupCount=5, encoding="utf-8")
    fh.setFormatter(JsonFormatter(datefmt="%Y-%m-%d %H:%M:%S"))
    fh.setLevel(level)
    return fh


def setup_logging(logs_dir: Path, level: int = logging.INFO) -> None:
    logs_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(level)
    if root.handlers:
        return

    root.addHandler(_handler(logs_dir / "app.log", logging.INFO))
    root.addHandler(_handler(logs_dir / "errors.log", logging.ERROR))

    ledger = logging.getLogger("stockbook.ledger")
    ledger.addHandler(_handler(logs_dir / "ledger.log", logging.INFO))
    ledger.setLevel(logging.INFO)

    documents_handler = _handler(logs_dir / "documents.log", logging.INFO)
    for name in DOCUMENT_LOGGERS:
        logging.getLogger(name).addHandler(documents_handler)
        logging.getLogger(name).setLevel(logging.INFO)

    fx = logging.getLogger("stockbook.fx")
    fx.addHandler(_handler(logs_dir / "fx.log", logging.INFO))
    fx.setLevel(logging.INFO)
