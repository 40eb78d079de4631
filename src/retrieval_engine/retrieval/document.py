"""
Document model for the retrieval system.

Single responsibility: Define the structure of documents handed to and
returned from the retrieval adapter.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class Document:
    """
    A text chunk with its metadata.

    Going in (indexing), metadata carries namespaceId, type, source and any
    type-specific identifier. Coming out of `retrieve_relevant`, it also
    carries the stored extras and a `score`.
    """
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str | None = None

    @property
    def namespace_id(self) -> str:
        return str(self.metadata.get("namespaceId", ""))

    @property
    def type(self) -> str:
        return str(self.metadata.get("type", ""))

    @property
    def score(self) -> float | None:
        return self.metadata.get("score")

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "content": self.content,
            "metadata": dict(self.metadata),
        }
