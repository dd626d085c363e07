import json
import logging


class JsonFormatter(logging.Formatter):
    """One JSON object per line; tracebacks go in ``exc_info``."""

    def format(self, record):
        entry = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(app):
    if app.config.get("ENV") != "production":
        level = logging.DEBUG
        formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    else:
        level = logging.INFO
        formatter = JsonFormatter()

    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(level)
    app.logger.setLevel(level)
