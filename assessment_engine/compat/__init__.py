# CUI // SP-CTI
"""Assessment engine compatibility helpers: config, datetime, database paths.

Uses PyYAML for configuration and the Python stdlib for everything else.
"""
from assessment_engine.compat.config import (  # noqa: F401
    DEFAULT_CONFIG,
    get_project_root,
    get_setting,
    load_config,
)
from assessment_engine.compat.datetime_utils import (  # noqa: F401
    parse_timestamp,
    to_iso,
    utc_now,
    utc_now_iso,
)
