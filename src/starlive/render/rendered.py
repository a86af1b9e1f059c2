"""
Reference rendering of the host engine's output tree.

A `Rendered` is a list of static fragments interleaved with dynamic slots.
Its fingerprint identifies the static skeleton: two renders with the same
fingerprint are diffed slot by slot, anything else is a full replacement.
"""

import hashlib
import html
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from fastcore.xml import FT, Safe, to_xml


def fingerprint_of(*parts: Any) -> int:
    digest = hashlib.blake2b(digest_size=8)
    for part in parts:
        digest.update(repr(part).encode("utf-8"))
        digest.update(b"\x00")
    return int.from_bytes(digest.digest(), "big")


@dataclass
class Rendered:
    """Static fragments around dynamic slots; `len(static) == len(dynamic) + 1`."""
    static: List[str]
    dynamic: List[Any] = field(default_factory=list)
    fingerprint: Optional[int] = None

    def __post_init__(self):
        if len(self.static) != len(self.dynamic) + 1:
            raise ValueError("Rendered needs exactly one more static fragment than dynamic slots")
        if self.fingerprint is None:
            self.fingerprint = fingerprint_of(*self.static)

    @classmethod
    def empty(cls) -> "Rendered":
        return cls(static=[""])

    @classmethod
    def compose(cls, *parts: Any) -> "Rendered":
        """
        Build from a mix of static markup and dynamic values.

        Plain `str` parts are static markup. Everything else, including
        `Safe` markup, FT trees and nested `Rendered` outputs, fills a
        dynamic slot.
        """
        static, dynamic = [""], []
        for part in parts:
            if type(part) is str:
                static[-1] += part
            else:
                dynamic.append(part)
                static.append("")
        return cls(static=static, dynamic=dynamic)

    @classmethod
    def template(cls, static: Sequence[str], *dynamic: Any) -> "Rendered":
        """`Rendered.template(["<h1>", "</h1>"], title)`; every value, strings included, fills a slot."""
        return cls(static=list(static), dynamic=list(dynamic))

    @classmethod
    def from_value(cls, value: Any) -> "Rendered":
        """Coerce whatever a component's `render` returned."""
        if isinstance(value, Rendered):
            return value
        if value is None:
            return cls.empty()
        if isinstance(value, str):
            return cls(static=[str(value)])
        return cls(static=[render_dynamic(value)])

    def to_html(self) -> str:
        out = [self.static[0]]
        for slot, static in zip(self.dynamic, self.static[1:]):
            out.append(render_dynamic(slot))
            out.append(static)
        return "".join(out)

    __html__ = to_html

    def __str__(self) -> str:
        return self.to_html()

    def diff(self, previous: Optional["Rendered"]) -> Optional[Dict[int, Any]]:
        """
        Changed slots relative to `previous`, or None when the structure changed.

        Nested `Rendered` slots with a matching fingerprint are diffed
        recursively; the result maps slot index to new value or nested diff.
        """
        if previous is None or previous.fingerprint != self.fingerprint:
            return None
        changes: Dict[int, Any] = {}
        for idx, (new, old) in enumerate(zip(self.dynamic, previous.dynamic)):
            if isinstance(new, Rendered) and isinstance(old, Rendered):
                nested = new.diff(old)
                if nested is None:
                    changes[idx] = new
                elif nested:
                    changes[idx] = nested
            elif render_dynamic(new) != render_dynamic(old):
                changes[idx] = new
        return changes


def render_dynamic(value: Any) -> str:
    if value is None or value is False:
        return ""
    if isinstance(value, Rendered):
        return value.to_html()
    if isinstance(value, Safe):
        return str(value)
    if isinstance(value, FT):
        return to_xml(value, indent=False)
    if isinstance(value, (list, tuple)):
        return "".join(render_dynamic(v) for v in value)
    if hasattr(value, "__ft__"):
        return to_xml(value, indent=False)
    return html.escape(str(value))
