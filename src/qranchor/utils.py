"""
Shared helper functions and utilities.

Logging setup and JSON configuration loading used by the CLI and tests.
"""

import copy
import json
import logging
import os


def setup_logging(level=logging.INFO):
    """Set up logging configuration.

    Args:
        level: Logging level (default: INFO)
    """
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    logger = logging.getLogger(__name__)
    logger.info("Logging initialized")


DEFAULT_CONFIG = {
    # Capture settings
    'camera_id': 0,
    'video_width': 640,
    'video_height': 480,
    'video_fps': 30,
    'camera_backend_priority': None,  # e.g. ["CAP_V4L2", "CAP_ANY"]
    'camera_init_attempts': 10,

    # Perspective camera and marker
    'scene': {
        'fov_deg': 60.0,  # Vertical field of view
        'near': 0.01,
        'far': 100.0,
        'marker_size_m': 0.12,  # Physical side length of the printed code
    },

    # Anchor smoothing and appearance
    'anchors': {
        'cooldown_ms': 16.0,
        'position_smoothing': 0.5,
        'rotation_smoothing': 0.5,
        'saturation': 0.7,
        'lightness': 0.6,
        'cube_size_m': 0.15,
        'opacity': 0.9,
    },

    # Approximate placement
    'fallback': {
        'min_distance': 0.4,
        'max_distance': 3.0,
        'size_scale': 0.9,
        'min_size_ratio': 0.001,
        'hash_spread': 1.2,
        'hash_depth': 1.2,
    },

    # Homography solver
    'solver': {
        'pivot_epsilon': 1e-8,
    },

    # OpenCV rendering surface
    'overlay': {
        'thickness': 2,
        'antialiasing': True,
        'show_labels': True,
        'animate': True,
    },

    # Display
    'display_width': 640,
    'display_height': 480,
    'show_detections': True,
}


def _merge(base, override):
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


def get_config(config_path=None):
    """Load configuration from file or return defaults.

    Nested sections in the file are merged key by key into the defaults.

    Args:
        config_path: Path to configuration file (optional)

    Returns:
        dict: Configuration dictionary
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_path and os.path.exists(config_path):
        try:
            with open(config_path, 'r') as f:
                loaded_config = json.load(f)
            _merge(config, loaded_config)
            logging.info("Configuration loaded from %s", config_path)
        except (OSError, ValueError) as e:
            logging.warning("Failed to load config from %s: %s", config_path, e)
    elif config_path:
        logging.warning("Config file %s not found; using defaults", config_path)

    return config


def save_config(config, config_path):
    """Save configuration to file.

    Returns:
        bool: True if save successful, False otherwise
    """
    try:
        with open(config_path, 'w') as f:
            json.dump(config, f, indent=4)
        logging.info("Configuration saved to %s", config_path)
        return True
    except (OSError, TypeError) as e:
        logging.error("Failed to save config to %s: %s", config_path, e)
        return False


def validate_config(config):
    """Validate configuration parameters.

    Returns:
        bool: True if valid, False otherwise
    """
    required_keys = ['video_width', 'video_height', 'scene', 'anchors', 'fallback']

    for key in required_keys:
        if key not in config:
            logging.error("Missing required config key: %s", key)
            return False

    if config['video_width'] <= 0 or config['video_height'] <= 0:
        logging.error("Video dimensions must be positive")
        return False

    fov = config['scene'].get('fov_deg', 60.0)
    if not 0 < fov < 180:
        logging.error("Field of view must be within (0, 180) degrees, got %s", fov)
        return False

    if config['scene'].get('marker_size_m', 0.12) <= 0:
        logging.error("Marker size must be positive")
        return False

    fallback = config['fallback']
    if fallback.get('min_distance', 0.4) > fallback.get('max_distance', 3.0):
        logging.error("fallback.min_distance exceeds fallback.max_distance")
        return False

    logging.info("Configuration validated successfully")
    return True
