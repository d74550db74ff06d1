import os
from pathlib import Path

import toml
from aw_core.config import load_config_toml

default_config = """
# Split a session in two when the tick loop stalls for longer than
# tuning.sleep_threshold (system sleep / suspend). The time between the last
# tick before the stall and the first tick after it is not counted.
gap_detection = true

# Which closed sessions go through the minimum duration filter:
#   "always"   - every close (stop, task switch, sleep gap, shutdown)
#   "gap-only" - only sessions closed by sleep gap detection
filter_policy = "always"

# Where the active session marker, pending queues and the session journal
# live. Empty means $XDG_DATA_HOME/worktime-tracker (or ~/.local/share/...)
data_dir = ""

[tuning]
tick_interval = 1.0
sleep_threshold = 120.0
min_session_duration = 60.0
status_interval = 60.0

## Tasks known to the command line host. The estimate is in minutes, or
## JIRA style ("1h 30m"). Tasks without a positive estimate are not tracked.
# [tasks.writing]
# estimate = "2h"
""".strip()

config = load_config_toml("worktime-tracker", default_config)


def load_custom_config(config_path):
    """Load config from a custom file path."""
    global config
    if config_path:
        config_path = Path(config_path)
        if config_path.exists():
            config = toml.load(config_path)
        else:
            raise FileNotFoundError(f"Config file not found: {config_path}")
    return config


def get_tuning_param(config: dict, param_name: str, env_var: str, default: float) -> float:
    """Get a tuning parameter from config or environment variable.

    Priority order (highest to lowest):
    1. Environment variable (allows temporary override)
    2. config['tuning'][param_name] (persistent configuration)
    3. default value

    Args:
        config: Configuration dictionary
        param_name: Name in config['tuning'] section
        env_var: Environment variable name (e.g., 'WORKTIME_SLEEP_THRESHOLD')
        default: Default value if neither config nor env var is set

    Returns:
        The parameter value as float
    """
    env_value = os.environ.get(env_var)
    if env_value:
        return float(env_value)

    if "tuning" in config and param_name in config["tuning"]:
        return float(config["tuning"][param_name])

    return default


def get_data_dir(config: dict) -> Path:
    """Directory for tracker state, from config or the XDG data directory."""
    configured = config.get("data_dir")
    if configured:
        return Path(configured).expanduser()

    data_home = os.environ.get("XDG_DATA_HOME")
    if data_home:
        data_dir = Path(data_home)
    else:
        data_dir = Path.home() / ".local" / "share"
    return data_dir / "worktime-tracker"
