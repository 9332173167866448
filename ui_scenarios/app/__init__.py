"""Application-level utilities (environment, settings, runtime config)."""

from .settings import EngineSettings
from .configuration import RuntimeConfig, load_runtime_config
from .environment import Paths, build_default_paths, configure_logging
