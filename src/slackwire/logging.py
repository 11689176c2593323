import logging

from rich.logging import RichHandler

logger = logging.getLogger("slackwire")
web_logger = logging.getLogger("slackwire.web")
web_logger.propagate = False


def configure_logger(log_level: str = "INFO", web_log_level: str = "WARNING") -> None:
    logger.setLevel(log_level)
    web_logger.setLevel(web_log_level)

    logger.handlers.clear()
    logger.addHandler(RichHandler(log_time_format="[%X]", markup=False))

    web_logger.handlers.clear()
    web_logger.addHandler(RichHandler(log_time_format="[%X]", markup=False))
