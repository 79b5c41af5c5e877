from dataclasses import dataclass, field
from typing import Dict

TEXT_FORMAT = "text/plain"


@dataclass
class ClipboardEntry:
    """One clipboard capture: a set of named byte payloads (formats)."""
    formats: Dict[str, bytes] = field(default_factory=dict)

    @classmethod
    def from_text(cls, text: str) -> "ClipboardEntry":
        return cls(formats={TEXT_FORMAT: text.encode("utf-8")})

    @property
    def data_hash(self) -> int:
        from history.hashing import entry_hash
        return entry_hash(self.formats)

    def text(self) -> str:
        return self.formats.get(TEXT_FORMAT, b"").decode("utf-8", errors="ignore")

    def has_format(self, mime: str) -> bool:
        return mime in self.formats

    def is_empty(self) -> bool:
        return not any(self.formats.values())
