import logging
import sys

from termcolor import colored

PLAIN_FORMAT = "%(asctime)s [library-automount] %(levelname)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class ColoredFormatter(logging.Formatter):
    """
    Formatter that colors and bolds the entire log record (level, module, message),
    while leaving the timestamp in default color.
    """
    MODULE_COLORS = {
        'dispatcher': {'color': 'light_grey', 'attrs': ['bold']},
        'device_lock': {'color': 'magenta', 'attrs': ['bold']},
        'volume_probe': {'color': 'light_blue', 'attrs': ['bold']},
        'mount_service': {'color': 'cyan', 'attrs': ['bold']},
        'scaffold': {'color': 'light_green', 'attrs': ['bold']},
        'peer': {'color': 'yellow', 'attrs': ['bold']},
    }

    LEVEL_COLORS = {
        'INFO': 'green',
        'WARNING': 'yellow',
        'ERROR': 'red',
        'CRITICAL': 'red',
    }
    MAX_MODULE_LENGTH = 14  # Adjust to align columns

    def format(self, record):
        asctime = self.formatTime(record, self.datefmt)
        timestamp = f"{asctime}.{int(record.msecs):03d}"

        level = record.levelname
        padded_module = record.module.strip().ljust(self.MAX_MODULE_LENGTH)
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"

        # Level color beats module color for warnings and worse
        module_info = self.MODULE_COLORS.get(record.module)
        if module_info and record.levelno < logging.WARNING:
            color = module_info['color']
            attrs = module_info['attrs']
        else:
            color = self.LEVEL_COLORS.get(level, 'dark_grey')
            attrs = ['bold']

        record_text = f"{level}: {padded_module} {message}"
        return f"{timestamp}: {colored(record_text, color, attrs=attrs)}"


def configure_logging(level=logging.INFO, log_file=None, stream=None):
    """
    Install console (and optional file) handlers on the root logger.

    Colors are only used on a terminal; under systemd stdout goes to the
    journal, which gets the plain format.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    stream = stream or sys.stdout

    logger = logging.getLogger()
    logger.setLevel(level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    console_handler = logging.StreamHandler(stream)
    if hasattr(stream, "isatty") and stream.isatty():
        console_handler.setFormatter(ColoredFormatter(datefmt=DATE_FORMAT))
    else:
        console_handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(file_handler)

    return logger
