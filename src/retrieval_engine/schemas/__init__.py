"""Metadata and vector schemas."""

from retrieval_engine.schemas.metadata import (
    DOCUMENT_TYPES,
    IDENTIFIER_KEYS,
    SUMMARY_KEYS,
    BasicInfoMetadata,
    BusinessHoursMetadata,
    ContactInfoMetadata,
    CustomResponseMetadata,
    DocumentType,
    FaqMetadata,
    PaymentMethodsMetadata,
    PromotionMetadata,
    ServiceMetadata,
    Vector,
    VectorMetadata,
    build_metadata,
    metadata_to_dict,
    parse_metadata,
)

__all__ = [
    "DOCUMENT_TYPES",
    "IDENTIFIER_KEYS",
    "SUMMARY_KEYS",
    "BasicInfoMetadata",
    "BusinessHoursMetadata",
    "ContactInfoMetadata",
    "CustomResponseMetadata",
    "DocumentType",
    "FaqMetadata",
    "PaymentMethodsMetadata",
    "PromotionMetadata",
    "ServiceMetadata",
    "Vector",
    "VectorMetadata",
    "build_metadata",
    "metadata_to_dict",
    "parse_metadata",
]
