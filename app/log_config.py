import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(app):
    """Route app and service loggers through one stream handler."""
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)

    root = logging.getLogger()
    if not any(getattr(h, "_perks_handler", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._perks_handler = True
        root.addHandler(handler)
    root.setLevel(level)
    app.logger.setLevel(level)
