from .params import encode_query, flatten, parse_query, parse_params, parse_changeset
from .routes import (
    build_path, canonical_path, match_route, route_vars, to_starlette_path,
    url_state, session_state, project,
)

__all__ = [
    "encode_query", "flatten", "parse_query", "parse_params", "parse_changeset",
    "build_path", "canonical_path", "match_route", "route_vars", "to_starlette_path",
    "url_state", "session_state", "project",
]
