import sys
from pathlib import Path

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - "
    "<level>{message}</level>"
)


def setup_logger(
    *,
    level: str = "INFO",
    json_logs: bool = False,
    log_dir: str | None = "logs",
    rotation: str = "20 MB",
    retention: str = "7 days",
) -> None:
    """Configure loguru once at startup.

    Console shows ``level`` and above; the rotating file sink (skipped when
    ``log_dir`` is None) always keeps DEBUG so a failed scan cycle can be
    reconstructed afterwards. ``json_logs`` switches both sinks to loguru's
    serialized records.
    """
    logger.remove()
    logger.add(
        sys.stdout,
        format=CONSOLE_FORMAT,
        level=level.upper(),
        colorize=not json_logs,
        serialize=json_logs,
        backtrace=False,
        enqueue=True,
    )

    if log_dir is None:
        return
    Path(log_dir).mkdir(parents=True, exist_ok=True)
    logger.add(
        Path(log_dir) / "callcaster_{time:YYYY-MM-DD}.log",
        level="DEBUG",
        rotation=rotation,
        retention=retention,
        compression="gz",
        serialize=json_logs,
        enqueue=True,
    )
