import os
from pathlib import Path
from typing import Optional

from nabla.common.core.logging_config import configure_queue_logging
from nabla.common.core.logging_config import setup_logging as common_setup_logging

from ..config import config

DEFAULT_LOG_CONFIG_PATH = Path(__file__).resolve().parent.parent / "gateway_log.yaml"


def setup_logging(vl_url: Optional[str] = None):
    """
    Load the YAML config and initialize logging.
    Also configure async log delivery to VictoriaLogs when a URL is set.

    Args:
        vl_url: VictoriaLogs base or ingestion URL; config.VICTORIALOGS_URL when None
    """
    config_path = os.getenv("LOG_CONFIG_PATH", str(DEFAULT_LOG_CONFIG_PATH))
    common_setup_logging(config_path)

    if vl_url is None:
        vl_url = config.VICTORIALOGS_URL
    if vl_url and not vl_url.endswith("/insert/jsonline"):
        vl_url = f"{vl_url.rstrip('/')}/insert/jsonline"
    return configure_queue_logging(service_name="nabla-gateway", vl_url=vl_url)
