"""
Configuration Module

Loads the YAML configuration and merges it over the built-in defaults.
"""

import copy
import logging
import yaml
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    'camera': {
        'device': 0,
        'width': 640,
        'height': 480,
        'fps': 30
    },
    'embedding': {
        'model': 'face_recognition',
        'detector_model': 'hog',
        'upsample': 1,
        'num_jitters': 1,
        'landmarks': True,
        'normalization': False,
        'use_gpu': False
    },
    'recognition': {
        'distance_threshold': 0.6
    },
    'registration': {
        'required_fields': ['name', 'age'],
        'label_field': 'name',
        'allow_duplicate_labels': True
    },
    'session': {
        'overlay_enabled': True,
        'overlay_interval': 0.1
    },
    'logging': {
        'level': 'INFO',
        'file': None
    }
}


def merge_config(base: Dict[str, Any], overrides: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Recursively merge ``overrides`` into a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        Configuration dictionary; defaults when the file is missing or invalid
    """
    if config_path is None:
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(config_path, 'r') as f:
            user_config = yaml.safe_load(f) or {}
        if not isinstance(user_config, dict):
            raise ValueError("top-level YAML value must be a mapping")
        logger.info(f"Configuration loaded from {config_path}")
    except (OSError, yaml.YAMLError, ValueError) as e:
        logger.error(f"Failed to load config: {e}")
        # Return default configuration
        return copy.deepcopy(DEFAULT_CONFIG)

    return merge_config(DEFAULT_CONFIG, user_config)
