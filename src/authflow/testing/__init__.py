"""Test harness: synthetic requests, evolution bootstrapping and the scenario driver."""

from .bootstrap import (
    ConfigurationError,
    OtherFailure,
    SchemaMismatch,
    Success,
    apply_all_evolution_scripts,
    attempt,
    repair_database,
    with_evolutions,
)
from .context import HarnessContext, running_application
from .driver import (
    ExtractedResult,
    Scenario,
    extract,
    invoke,
    resolve_action,
    run_scenario,
    session_cookie,
)
from .requests import (
    Cookie,
    SyntheticCookies,
    SyntheticHeaders,
    SyntheticRequest,
    build_uri,
    encode_query,
)

__all__ = [
    "ConfigurationError",
    "Cookie",
    "ExtractedResult",
    "HarnessContext",
    "OtherFailure",
    "Scenario",
    "SchemaMismatch",
    "Success",
    "SyntheticCookies",
    "SyntheticHeaders",
    "SyntheticRequest",
    "apply_all_evolution_scripts",
    "attempt",
    "build_uri",
    "encode_query",
    "extract",
    "invoke",
    "repair_database",
    "resolve_action",
    "run_scenario",
    "running_application",
    "session_cookie",
    "with_evolutions",
]
