"""
StarLive - Server-Driven Live Components for FastHTML

Typed component state persisted to the URL, dependency-tracked derivations,
path-addressed events and render annotation, served over Datastar.
"""

from .core import (
    StarLiveError, SchemaError, SchemaCycleError, UnknownSchemaError,
    PropWriteError, DependencyCycleError, SessionNotFoundError,
    Persistence, Cardinality, FieldSpec, ComponentSchema,
    prop, state, component, components,
    SchemaRegistry, registry,
    Changeset, validate,
    Turn, Stream, Derivation, resolve_graph,
    Cursor, LiveComponent, LiveView, event,
    to_plain,
)
from .codec import encode_query, parse_query, parse_params, canonical_path
from .render import Rendered, RenderContext, canonical_urls
from .app import InProcessBus, LiveSession, TurnResult, InboundEvent, dispatch
from .persistence import SessionStore, get_session_store, start_all_cleanup, stop_all_cleanup
from .config import LiveConfig, Environment, get_config, set_config, configure_logging

__version__ = "0.1.0"

__all__ = [
    # Core
    'StarLiveError', 'SchemaError', 'SchemaCycleError', 'UnknownSchemaError',
    'PropWriteError', 'DependencyCycleError', 'SessionNotFoundError',
    'Persistence', 'Cardinality', 'FieldSpec', 'ComponentSchema',
    'prop', 'state', 'component', 'components',
    'SchemaRegistry', 'registry',
    'Changeset', 'validate',
    'Turn', 'Stream', 'Derivation', 'resolve_graph',
    'Cursor', 'LiveComponent', 'LiveView', 'event',
    'to_plain',

    # Codec and rendering
    'encode_query', 'parse_query', 'parse_params', 'canonical_path',
    'Rendered', 'RenderContext', 'canonical_urls',

    # Application service layer
    'InProcessBus', 'LiveSession', 'TurnResult', 'InboundEvent', 'dispatch',
    'SessionStore', 'get_session_store', 'start_all_cleanup', 'stop_all_cleanup',

    # Configuration
    'LiveConfig', 'Environment', 'get_config', 'set_config', 'configure_logging',
]
