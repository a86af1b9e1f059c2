from .rendered import Rendered, render_dynamic
from .annotator import annotate_component, wrap_page, inject, state_attributes, encode_value
from .reader import Annotations, read_annotations, canonical_urls
from .context import RenderContext

__all__ = [
    "Rendered", "render_dynamic",
    "annotate_component", "wrap_page", "inject", "state_attributes", "encode_value",
    "Annotations", "read_annotations", "canonical_urls",
    "RenderContext",
]
