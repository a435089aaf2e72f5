import os
import sys
import configparser
import logging
from logging.handlers import RotatingFileHandler

# Get the path to the parent directory
parent_dir = os.path.dirname(os.path.abspath(__file__))

# Construct the path to the config.ini file
config_file_path = os.path.join(parent_dir, "..", "config.ini")

# File path for the log file
log_file_path = os.path.join(parent_dir, "..", "logs", "routing-fees.log")

RETRY_INTERVAL_SECONDS = 60 * 2
RETRY_TIMES = 360
MAX_WORKERS = 8
DEFAULT_BASE_FEE_MSAT = 1000
DEFAULT_TIME_LOCK_DELTA = 40


def load_config(path=None):
    config = configparser.ConfigParser()
    config.read(path or config_file_path)
    return config


def fee_settings(config):
    """Retry and default policy values from the [fees] section."""
    return {
        "retry_interval": config.getfloat(
            "fees", "retry_interval_seconds", fallback=RETRY_INTERVAL_SECONDS
        ),
        "retry_times": config.getint("fees", "retry_times", fallback=RETRY_TIMES),
        "max_workers": config.getint("fees", "max_workers", fallback=MAX_WORKERS),
        "default_base_fee_msat": config.getint(
            "fees", "default_base_fee_msat", fallback=DEFAULT_BASE_FEE_MSAT
        ),
        "default_time_lock_delta": config.getint(
            "fees", "default_time_lock_delta", fallback=DEFAULT_TIME_LOCK_DELTA
        ),
    }


def setup_logging(config, debug=False):
    log_path = config.get("logging", "log_file", fallback=log_file_path)

    # Ensure the logs directory exists
    logs_dir = os.path.dirname(os.path.abspath(log_path))
    if not os.path.exists(logs_dir):
        os.makedirs(logs_dir, exist_ok=True)

    handlers = [
        RotatingFileHandler(log_path, maxBytes=10 * 1024 * 1024, backupCount=5)  # 10 MB
    ]
    if debug:
        handlers.append(logging.StreamHandler(sys.stderr))

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )

    # Adjust logging levels for third-party libraries
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("polling2").setLevel(logging.WARNING)

    return logging.getLogger("routing_fees")
