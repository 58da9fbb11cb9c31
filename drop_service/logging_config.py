import logging
import sys

from drop_service.config import settings

LOG_LEVEL = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

# botocore logs every credential lookup at INFO
logging.getLogger("botocore").setLevel(max(LOG_LEVEL, logging.WARNING))

def get_logger(name: str):
    return logging.getLogger(name)
