# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import copy
import logging
import math
from numbers import Real
from pathlib import Path
from typing import Any, Dict, Optional, Union

# Third-Party Imports
import yaml

# Local Imports
from decontam_16s import constants
from decontam_16s.errors import ConfigError, InvalidThreshold

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger("decontam_16s")

# ================================= DEFAULT VALUES =================================== #

DEFAULT_CONFIG: Dict[str, Any] = {
    "project_dir": constants.DEFAULT_PROJECT_DIR,
    "inputs": {
        "feature_table": None,
        "taxonomy": None,
        "metadata": None,
        "orientation": constants.DEFAULT_ORIENTATION,
        "delimiter": None,
    },
    "metadata": {
        "sample_id_column": constants.DEFAULT_SAMPLE_ID_COLUMN,
        "batch_column": constants.DEFAULT_BATCH_COLUMN,
        "sample_type_column": constants.DEFAULT_SAMPLE_TYPE_COLUMN,
        "control_column": constants.DEFAULT_CONTROL_COLUMN,
        "control_types": list(constants.DEFAULT_CONTROL_TYPES),
        "concentration_column": constants.DEFAULT_CONCENTRATION_COLUMN,
    },
    "taxonomy": {
        "id_column": None,
        "taxonomy_column": None,
    },
    "classifier": {
        "mode": constants.DEFAULT_CLASSIFIER_MODE,
        "test": constants.DEFAULT_PREVALENCE_TEST,
        "threshold": None,
        "auto_threshold": False,
        "histogram_bins": constants.DEFAULT_HISTOGRAM_BINS,
        "chunk_size": constants.DEFAULT_CHUNK_SIZE,
        "max_workers": constants.DEFAULT_MAX_WORKERS,
    },
    "pruning": {
        "min_count": constants.DEFAULT_MIN_COUNT,
        "depth_bins": constants.DEFAULT_DEPTH_BINS,
    },
    "divnet": {
        "enabled": False,
        "comparisons": [],
        "write_config": True,
        "config_template": None,
        "seed": constants.DEFAULT_DIVNET_SEED,
    },
}

# ==================================== FUNCTIONS ===================================== #

def resolve_relative_paths(config: Dict, config_dir: Path) -> Dict:
    """Converts any relative paths in the configuration to absolute paths based on
    the directory of the config file."""
    for key, value in config.items():
        if isinstance(value, str):
            # Check if the value is a relative path
            if value.startswith("./") or value.startswith("../"):
                # Convert relative path to absolute path
                config[key] = (config_dir / value).resolve()
        elif isinstance(value, dict):
            # Recursively handle nested dictionaries
            config[key] = resolve_relative_paths(value, config_dir)
    return config


def merge_config(defaults: Dict, overrides: Optional[Dict]) -> Dict:
    """Recursively overlay user settings on the defaults without mutating either."""
    merged = copy.deepcopy(defaults)
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def validate_threshold(threshold: Any) -> float:
    """Return ``threshold`` as a float, or raise ``InvalidThreshold``.

    Booleans, non-numbers, NaN and values outside [0, 1] are all rejected.
    """
    if isinstance(threshold, bool) or not isinstance(threshold, Real):
        raise InvalidThreshold(threshold)
    threshold = float(threshold)
    if math.isnan(threshold) or not 0.0 <= threshold <= 1.0:
        raise InvalidThreshold(threshold)
    return threshold


def validate_config(config: Dict) -> Dict:
    """Check option values that would otherwise fail deep inside a stage.

    Args:
        config: Merged configuration dictionary.

    Returns:
        The same configuration.

    Raises:
        ConfigError:      For unknown modes or non-positive counts.
        InvalidThreshold: For a configured threshold outside [0, 1].
    """
    cls_cfg = config.get("classifier", {})
    if cls_cfg.get("mode") not in constants.CLASSIFIER_MODES:
        raise ConfigError(
            f"Invalid classifier mode: {cls_cfg.get('mode')}. "
            f"Expected one of {list(constants.CLASSIFIER_MODES)}"
        )
    if cls_cfg.get("test") not in constants.PREVALENCE_TESTS:
        raise ConfigError(
            f"Invalid prevalence test: {cls_cfg.get('test')}. "
            f"Expected one of {list(constants.PREVALENCE_TESTS)}"
        )
    if cls_cfg.get("threshold") is not None:
        cls_cfg["threshold"] = validate_threshold(cls_cfg["threshold"])
    if cls_cfg.get("mode") == "frequency" and not config["metadata"].get("concentration_column"):
        raise ConfigError(
            "Frequency mode needs `metadata.concentration_column`"
        )

    for section, key in (("classifier", "histogram_bins"), ("classifier", "chunk_size"),
                         ("classifier", "max_workers"), ("pruning", "depth_bins")):
        value = config.get(section, {}).get(key)
        if not isinstance(value, int) or isinstance(value, bool) or value < 1:
            raise ConfigError(f"`{section}.{key}` must be a positive integer, got {value!r}")

    min_count = config.get("pruning", {}).get("min_count")
    if not isinstance(min_count, int) or isinstance(min_count, bool) or min_count < 0:
        raise ConfigError(f"`pruning.min_count` must be a non-negative integer, got {min_count!r}")

    orientation = config.get("inputs", {}).get("orientation")
    if orientation not in constants.ORIENTATIONS:
        raise ConfigError(
            f"Invalid orientation: {orientation}. "
            f"Expected one of {list(constants.ORIENTATIONS)}"
        )

    for comparison in config.get("divnet", {}).get("comparisons", []) or []:
        if not isinstance(comparison, dict) or "column" not in comparison:
            raise ConfigError(
                f"Each divnet comparison needs at least a `column`: {comparison!r}"
            )
    return config


def get_config(
    config_path: Union[str, Path] = constants.DEFAULT_CONFIG
) -> Dict:
    # Load the YAML configuration file
    with open(config_path, "r") as file:
        config = yaml.safe_load(file) or {}

    # Resolve any relative paths in the config
    config_dir = Path(config_path).resolve().parent
    config = resolve_relative_paths(config, config_dir)

    config = merge_config(DEFAULT_CONFIG, config)
    logger.debug(f"Loaded configuration from {config_path}")
    return validate_config(config)
