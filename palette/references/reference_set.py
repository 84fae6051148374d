"""
Reference records and the per-project ReferenceSet.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from palette.core.constants import ReferenceKind, HANDLE_PATTERN
from palette.core.exceptions import DuplicateHandleError, InvalidHandleError
from .handles import is_valid_handle, unique_handle


@dataclass
class Reference:
    """A named recurring entity addressable from shot text by its handle."""
    handle: str
    name: str
    kind: ReferenceKind
    description: str = ""
    image_url: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "handle": self.handle,
            "name": self.name,
            "kind": self.kind.value,
            "description": self.description,
            "image_url": self.image_url,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Reference':
        return cls(
            handle=data["handle"],
            name=data.get("name", data["handle"].lstrip("@")),
            kind=ReferenceKind(data.get("kind", ReferenceKind.CHARACTER.value)),
            description=data.get("description", ""),
            image_url=data.get("image_url"),
        )


class ReferenceSet:
    """
    Ordered references grouped by kind. Handles are unique across kinds.
    """

    def __init__(self, references: List[Reference] = None):
        self._by_kind: Dict[ReferenceKind, List[Reference]] = {kind: [] for kind in ReferenceKind}
        self._by_handle: Dict[str, Reference] = {}
        for reference in references or []:
            self.add(reference)

    def add(self, reference: Reference) -> Reference:
        if not is_valid_handle(reference.handle):
            raise InvalidHandleError(reference.handle, HANDLE_PATTERN)
        existing = self._by_handle.get(reference.handle)
        if existing is not None:
            raise DuplicateHandleError(reference.handle, existing.kind.value)
        self._by_kind[reference.kind].append(reference)
        self._by_handle[reference.handle] = reference
        return reference

    def add_named(
        self,
        name: str,
        kind: ReferenceKind,
        description: str = "",
        image_url: str = None
    ) -> Reference:
        """Add an entity, allocating a unique handle from its name."""
        handle = unique_handle(name, self._by_handle)
        return self.add(Reference(handle, name.strip(), kind, description, image_url))

    def get(self, handle: str) -> Optional[Reference]:
        return self._by_handle.get(handle)

    def handles(self) -> List[str]:
        return list(self._by_handle)

    def by_kind(self, kind: ReferenceKind) -> List[Reference]:
        return list(self._by_kind[kind])

    def names(self) -> List[str]:
        return [ref.name for ref in self]

    def copy(self) -> 'ReferenceSet':
        return ReferenceSet([
            Reference(r.handle, r.name, r.kind, r.description, r.image_url) for r in self
        ])

    def __contains__(self, handle: str) -> bool:
        return handle in self._by_handle

    def __iter__(self) -> Iterator[Reference]:
        for kind in ReferenceKind:
            yield from self._by_kind[kind]

    def __len__(self) -> int:
        return len(self._by_handle)

    def to_prompt_block(self) -> str:
        """Render the set as the reference list given to the model."""
        if not self._by_handle:
            return "(no references)"
        lines = []
        for kind in ReferenceKind:
            refs = self._by_kind[kind]
            if not refs:
                continue
            lines.append(f"{kind.value.upper()}S:")
            for ref in refs:
                suffix = f" - {ref.description}" if ref.description else ""
                lines.append(f"  {ref.handle} ({ref.name}){suffix}")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {kind.value: [ref.to_dict() for ref in self._by_kind[kind]] for kind in ReferenceKind}

    @classmethod
    def from_dict(cls, data: dict) -> 'ReferenceSet':
        references = []
        for kind in ReferenceKind:
            for item in data.get(kind.value, []):
                item = dict(item, kind=kind.value)
                references.append(Reference.from_dict(item))
        return cls(references)
