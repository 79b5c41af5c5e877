from abc import ABC, abstractmethod
from typing import Dict, Mapping, Optional

from models.clipboard_entry import ClipboardEntry


class ClipboardReader(ABC):
    """Access to the OS clipboard as a set of MIME formats."""

    @abstractmethod
    def read_formats(self) -> Optional[Dict[str, bytes]]:
        pass

    @abstractmethod
    def write_formats(self, formats: Mapping[str, bytes]) -> Optional[Dict[str, bytes]]:
        """Put ``formats`` on the clipboard.

        Returns the formats the clipboard now holds, which may be a subset
        of ``formats``, or None if nothing was written.
        """
        pass

    def read_entry(self) -> Optional[ClipboardEntry]:
        try:
            formats = self.read_formats()
        except Exception:
            return None
        if formats is None:
            return None
        return ClipboardEntry(formats=dict(formats))

    def write_entry(self, entry: ClipboardEntry) -> Optional[ClipboardEntry]:
        try:
            written = self.write_formats(entry.formats)
        except Exception:
            return None
        if written is None:
            return None
        return ClipboardEntry(formats=dict(written))
