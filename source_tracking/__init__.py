"""Source tracking: local and remote change reconciliation."""

from source_tracking.component_set import ComponentSet, SourceComponent
from source_tracking.config_loader import Config, ConfigError, load_config
from source_tracking.conflicts import ConflictError
from source_tracking.logging_setup import get_logger, setup_logging
from source_tracking.models import ChangeFormat, ChangeState, Org, Origin
from source_tracking.session import SourceTracking, create_source_tracking, open_source_tracking

__all__ = [
    "ChangeFormat",
    "ChangeState",
    "ComponentSet",
    "Config",
    "ConfigError",
    "ConflictError",
    "Org",
    "Origin",
    "SourceComponent",
    "SourceTracking",
    "create_source_tracking",
    "get_logger",
    "load_config",
    "open_source_tracking",
    "setup_logging",
]
