"""
Vector metadata schemas.

Every stored vector carries metadata with four reserved keys (namespaceId,
type, source, content). The `type` field is a closed set, and each type may
carry exactly one optional identifier:

    service          -> serviceId
    faq              -> faqId
    promotion        -> promoId
    custom_response  -> responseId

The models below encode that as a pydantic discriminated union on `type`.
Unknown keys are still accepted (extra="allow") so callers can attach
free-form attributes; they round-trip through the JSON files untouched.

Field names are snake_case in Python and camelCase on the wire, matching the
files already written by the previous implementation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Annotated, Any, Literal, Mapping, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

DocumentType = Literal[
    "basic_info",
    "contact_info",
    "service",
    "faq",
    "promotion",
    "business_hours",
    "payment_methods",
    "custom_response",
]

DOCUMENT_TYPES: tuple[str, ...] = (
    "basic_info",
    "contact_info",
    "service",
    "faq",
    "promotion",
    "business_hours",
    "payment_methods",
    "custom_response",
)

# Keys kept when a query asks for metadata to be stripped
SUMMARY_KEYS = ("namespaceId", "type", "source")

# Identifier keys in the order they are used to build document ids
IDENTIFIER_KEYS = ("serviceId", "faqId", "promoId", "responseId")

LEGACY_NAMESPACE_KEY = "businessId"


class _MetadataBase(BaseModel):
    """Reserved keys shared by every metadata variant."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    namespace_id: str = Field(alias="namespaceId", min_length=1)
    source: str = ""
    content: str = ""


class BasicInfoMetadata(_MetadataBase):
    type: Literal["basic_info"] = "basic_info"


class ContactInfoMetadata(_MetadataBase):
    type: Literal["contact_info"] = "contact_info"


class ServiceMetadata(_MetadataBase):
    type: Literal["service"] = "service"
    service_id: str | None = Field(default=None, alias="serviceId")


class FaqMetadata(_MetadataBase):
    type: Literal["faq"] = "faq"
    faq_id: str | None = Field(default=None, alias="faqId")


class PromotionMetadata(_MetadataBase):
    type: Literal["promotion"] = "promotion"
    promo_id: str | None = Field(default=None, alias="promoId")


class BusinessHoursMetadata(_MetadataBase):
    type: Literal["business_hours"] = "business_hours"


class PaymentMethodsMetadata(_MetadataBase):
    type: Literal["payment_methods"] = "payment_methods"


class CustomResponseMetadata(_MetadataBase):
    type: Literal["custom_response"] = "custom_response"
    response_id: str | None = Field(default=None, alias="responseId")


VectorMetadata = Annotated[
    Union[
        BasicInfoMetadata,
        ContactInfoMetadata,
        ServiceMetadata,
        FaqMetadata,
        PromotionMetadata,
        BusinessHoursMetadata,
        PaymentMethodsMetadata,
        CustomResponseMetadata,
    ],
    Field(discriminator="type"),
]

_metadata_adapter: TypeAdapter = TypeAdapter(VectorMetadata)


def parse_metadata(data: Mapping[str, Any]) -> VectorMetadata:
    """
    Validate a raw metadata mapping into its typed variant.

    Files written before namespaces were introduced use `businessId`; it is
    accepted as the namespace id when `namespaceId` is absent.

    Raises:
        pydantic.ValidationError: unknown type, missing namespace id, etc.
    """
    raw = dict(data)
    if "namespaceId" not in raw and "namespace_id" not in raw and LEGACY_NAMESPACE_KEY in raw:
        raw["namespaceId"] = raw.pop(LEGACY_NAMESPACE_KEY)
    return _metadata_adapter.validate_python(raw)


def build_metadata(
    namespace_id: str,
    doc_type: str,
    source: str = "",
    content: str = "",
    **extra: Any,
) -> VectorMetadata:
    """Convenience constructor using wire (camelCase) keys for extras."""
    return parse_metadata(
        {
            "namespaceId": namespace_id,
            "type": doc_type,
            "source": source,
            "content": content,
            **extra,
        }
    )


def metadata_to_dict(metadata: BaseModel) -> dict[str, Any]:
    """Wire form of a metadata model: camelCase keys, unset identifiers omitted."""
    return metadata.model_dump(by_alias=True, exclude_none=True)


@dataclass(eq=False)
class Vector:
    """
    A stored embedding with identity and metadata.

    `values` is normalised to a 1-D float64 array. The flattened wire form of
    the metadata is computed once because filters compare against it on
    every query.
    """

    id: str
    values: np.ndarray
    metadata: VectorMetadata
    _flat: dict[str, Any] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.values = np.asarray(self.values, dtype=np.float64).ravel()
        if isinstance(self.metadata, Mapping):
            self.metadata = parse_metadata(self.metadata)
        self._flat = metadata_to_dict(self.metadata)

    @property
    def namespace_id(self) -> str:
        return self.metadata.namespace_id

    @property
    def flat_metadata(self) -> dict[str, Any]:
        """Metadata as a plain dict with wire keys (do not mutate)."""
        return self._flat

    def matches(self, filter: Mapping[str, Any] | None) -> bool:
        """AND-equality match; a filter key missing from the metadata never matches."""
        if not filter:
            return True
        for key, value in filter.items():
            if key not in self._flat or self._flat[key] != value:
                return False
        return True

    def to_dict(self) -> dict[str, Any]:
        """Convert to the on-disk JSON record."""
        return {
            "id": self.id,
            "values": self.values.tolist(),
            "metadata": dict(self._flat),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Vector":
        """Build from an on-disk JSON record."""
        return cls(
            id=str(data["id"]),
            values=np.asarray(data["values"], dtype=np.float64),
            metadata=parse_metadata(data["metadata"]),
        )
