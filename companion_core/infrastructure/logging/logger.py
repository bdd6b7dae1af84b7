import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger("companion_core")
logger.setLevel(logging.INFO)

_HANDLER_NAME = "companion_core.jsonfile"


class JsonFormatter(logging.Formatter):
    def __init__(self, redact_content: bool = False):
        super().__init__()
        self._redact = redact_content

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        if self._redact:
            msg = (msg or "")[:64]
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "name": record.name,
            "msg": msg,
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(extra)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logger(settings) -> logging.Logger:
    """按配置给 companion_core logger 挂上 JSON 文件输出，重复调用不会重复挂载。"""

    if not getattr(settings, "log_to_file", True):
        return logger
    for handler in logger.handlers:
        if handler.get_name() == _HANDLER_NAME:
            return logger
    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(log_dir / "companion.log", encoding="utf-8")
    fh.set_name(_HANDLER_NAME)
    fh.setLevel(logging.INFO)
    fh.setFormatter(JsonFormatter(redact_content=getattr(settings, "log_redact_content", False)))
    logger.addHandler(fh)
    return logger


def log_event(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
    payload = dict(log_ctx)
    payload.update(fields)
    logger.log(level, message, extra={"extra": payload})
