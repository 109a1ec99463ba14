from colorlog import ColoredFormatter
from datetime import datetime, UTC


class Formatter(ColoredFormatter):
  GREY = "\033[38;5;245m"
  YELLOW = "\033[33m"
  RESET = "\033[0m"

  def __init__(self, *args, **kwargs):
    kwargs.setdefault("datefmt", "%Y-%m-%dT%H:%M:%S.%fZ")
    super().__init__(*args, **kwargs)

  def format(self, record):
    if record.levelname == "WARNING":
      record.levelname = f"{self.YELLOW} WARN{self.RESET}"
    return super().format(record)

  def formatTime(self, record, datefmt=None) -> str:
    try:
      dt = datetime.fromtimestamp(record.created, UTC)
      if datefmt:
        return dt.strftime(datefmt)
      return super().formatTime(record, datefmt)
    except (ValueError, OverflowError, OSError):
      # the interpreter may be shutting down, fall back to the raw timestamp
      return f"{record.created}"

  def formatMessage(self, record) -> str:
    record.name = f"{self.GREY}{record.name.replace('.', '::')}{self.RESET}"
    record.asctime = f"{self.GREY}{self.formatTime(record, self.datefmt)}{self.RESET}"
    return super().formatMessage(record)
