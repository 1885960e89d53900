import json
import os
from typing import Dict, Any, List

from app.core.logger import logger

def load_service_catalog(path: str) -> List[Dict[str, Any]]:
    """
    Loads the list of bookable services from a JSON data file.
    Raises FileNotFoundError if the file is missing and ValueError if it is not
    a JSON array of service objects.
    """
    if not os.path.exists(path):
        logger.critical(f"❌ Service catalog '{path}' not found!")
        raise FileNotFoundError(f"Service catalog not found at {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            services = json.load(f)
    except json.JSONDecodeError as e:
        logger.critical(f"❌ Cannot parse service catalog JSON: {e}")
        raise ValueError(f"Invalid JSON in service catalog: {e}")

    if not isinstance(services, list):
        raise ValueError("Service catalog must be a JSON array")

    logger.info(f"✅ Service catalog loaded ({len(services)} services)")
    return services
