"""Plain-text logging for combotree (no Rich), for pipes and CI logs."""
import logging

# Extra fields printed after each run event, in this order
EVENT_FIELDS = {
    "run_start": ("queued", "workers", "result_key"),
    "leaf_start": ("leaf_id", "worker"),
    "leaf_finish": ("leaf_id", "status", "duration"),
    "task_error": ("leaf_id", "error"),
    "leaf_aborted": ("leaf_id", "error"),
    "run_complete": ("passed", "failed", "not_dispatched", "elapsed"),
    "run_stopped": ("passed", "failed", "not_dispatched", "elapsed"),
    "run_failed": ("passed", "failed", "not_dispatched", "elapsed", "error"),
    "run_rejected": ("leaves",),
}


class EventFormatter(logging.Formatter):
    """Formats run events as `[LEVEL] event key=value ...`; other messages as-is."""

    def __init__(self):
        super().__init__("[%(levelname)s] %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = EVENT_FIELDS.get(record.msg) if isinstance(record.msg, str) else None
        if not fields:
            return line

        parts = []
        for name in fields:
            value = getattr(record, name, None)
            if value is None:
                continue
            if isinstance(value, float):
                value = f"{value:.2f}"
            parts.append(f"{name}={value}")
        # keep any traceback super() appended after the fields
        head, sep, tail = line.partition("\n")
        return f"{head} {' '.join(parts)}{sep}{tail}" if parts else line


def create_logger(name: str = "combotree", silent: bool = False, level: int = logging.INFO) -> logging.Logger:
    """
    Create a plain logger for non-interactive output.

    Args:
        name: Logger name
        silent: If True, use NullHandler (no output)
        level: Logging level

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.handlers.clear()

    if silent:
        logger.addHandler(logging.NullHandler())
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(EventFormatter())
        logger.addHandler(handler)

    logger.propagate = False
    return logger
