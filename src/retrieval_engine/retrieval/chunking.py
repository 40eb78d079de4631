"""
Business record chunking.

Turns a business record from the system of record into retrieval documents:
one chunk for the profile, one for contact details (when any are present),
one per service, FAQ, promotion and custom response, and one each for
business hours and accepted payment methods.

Chunk ids are stable across syncs where the record supplies identifiers
(serviceId, faqId, promoId, responseId); items without an id fall back to
their position in the list.
"""

from __future__ import annotations

import threading
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from retrieval_engine.retrieval.document import Document

PROFILE_SOURCE = "business_profile"
FEED_SOURCE = "feed_ai"

DAYS_OF_WEEK = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

NOT_PROVIDED = "Not provided"


# ---------------------------------------------------------------------------
# RECORD MODELS
# ---------------------------------------------------------------------------


class _RecordModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class BusinessProfile(_RecordModel):
    business_name: str
    description: str | None = None
    category: str | None = Field(default=None, alias="Business_Category")
    address: str | None = None
    phone: str | None = None
    email: str | None = None
    website: str | None = None


class ServiceItem(_RecordModel):
    id: str | None = Field(default=None, alias="_id")
    name: str
    description: str = ""
    price: float = 0
    duration: int = 0


class FaqItem(_RecordModel):
    id: str | None = Field(default=None, alias="_id")
    question: str
    answer: str


class PromotionItem(_RecordModel):
    id: str | None = Field(default=None, alias="_id")
    name: str
    description: str = ""
    discount_type: Literal["percentage", "fixed"] = Field(default="percentage", alias="discountType")
    discount_value: float = Field(default=0, alias="discountValue")
    is_first_time_only: bool = Field(default=False, alias="isFirstTimeOnly")
    valid_until: str = Field(default="", alias="validUntil")
    is_active: bool = Field(default=True, alias="isActive")


class PaymentMethod(_RecordModel):
    type: Literal["cash", "card", "online"]
    enabled: bool = True
    details: str = ""


class CustomResponse(_RecordModel):
    id: str | None = Field(default=None, alias="_id")
    trigger: str
    response: str
    is_active: bool = Field(default=True, alias="isActive")


class DayHours(_RecordModel):
    open: str = ""
    close: str = ""
    is_open: bool = Field(default=False, alias="isOpen")


class BusinessHours(_RecordModel):
    monday: DayHours | None = None
    tuesday: DayHours | None = None
    wednesday: DayHours | None = None
    thursday: DayHours | None = None
    friday: DayHours | None = None
    saturday: DayHours | None = None
    sunday: DayHours | None = None


class BusinessRecord(_RecordModel):
    """Everything the assistant may know about one business."""

    namespace_id: str = Field(alias="namespaceId", min_length=1)
    profile: BusinessProfile
    services: list[ServiceItem] = Field(default_factory=list)
    faqs: list[FaqItem] = Field(default_factory=list)
    promotions: list[PromotionItem] = Field(default_factory=list)
    payment_methods: list[PaymentMethod] = Field(default_factory=list, alias="paymentMethods")
    custom_responses: list[CustomResponse] = Field(default_factory=list, alias="customResponses")
    business_hours: BusinessHours | None = Field(default=None, alias="businessHours")


# ---------------------------------------------------------------------------
# CHUNKING
# ---------------------------------------------------------------------------


def _number(value: float) -> str:
    """Render 50.0 as "50" and 49.5 as "49.5"."""
    return str(int(value)) if float(value).is_integer() else str(value)


def format_business_hours(hours: BusinessHours | None) -> str:
    """One "Day: open - close" (or "Day: Closed") line per day that is set."""
    if hours is None:
        return NOT_PROVIDED

    lines = []
    for day in DAYS_OF_WEEK:
        day_hours: DayHours | None = getattr(hours, day)
        if day_hours is None:
            continue
        if day_hours.is_open:
            lines.append(f"{day.capitalize()}: {day_hours.open} - {day_hours.close}")
        else:
            lines.append(f"{day.capitalize()}: Closed")

    return "\n".join(lines) if lines else NOT_PROVIDED


def _chunk(namespace_id: str, doc_type: str, source: str, content: str, **ids: str) -> Document:
    return Document(
        content=content,
        metadata={"namespaceId": namespace_id, "type": doc_type, "source": source, **ids},
    )


def parse_business_to_chunks(record: BusinessRecord) -> list[Document]:
    """Derive the retrieval documents for a business record."""
    ns = record.namespace_id
    profile = record.profile
    chunks = [
        _chunk(
            ns, "basic_info", PROFILE_SOURCE,
            f"Business Name: {profile.business_name}\n"
            f"Description: {profile.description or NOT_PROVIDED}\n"
            f"Category: {profile.category or 'Not specified'}",
        )
    ]

    if profile.address or profile.phone or profile.email:
        chunks.append(
            _chunk(
                ns, "contact_info", PROFILE_SOURCE,
                f"Address: {profile.address or NOT_PROVIDED}\n"
                f"Phone: {profile.phone or NOT_PROVIDED}\n"
                f"Email: {profile.email or NOT_PROVIDED}\n"
                f"Website: {profile.website or NOT_PROVIDED}",
            )
        )

    for index, service in enumerate(record.services):
        chunks.append(
            _chunk(
                ns, "service", FEED_SOURCE,
                f"Service: {service.name}\n"
                f"Description: {service.description}\n"
                f"Price: ${_number(service.price)}\n"
                f"Duration: {service.duration} minutes",
                serviceId=service.id or str(index),
            )
        )

    for index, faq in enumerate(record.faqs):
        chunks.append(
            _chunk(
                ns, "faq", FEED_SOURCE,
                f"Question: {faq.question}\nAnswer: {faq.answer}",
                faqId=faq.id or str(index),
            )
        )

    for index, promo in enumerate(record.promotions):
        unit = "%" if promo.discount_type == "percentage" else " dollars"
        chunks.append(
            _chunk(
                ns, "promotion", FEED_SOURCE,
                f"Promotion: {promo.name}\n"
                f"Description: {promo.description}\n"
                f"Discount: {_number(promo.discount_value)}{unit}\n"
                f"Valid until: {promo.valid_until}\n"
                f"First-time customers only: {'Yes' if promo.is_first_time_only else 'No'}",
                promoId=promo.id or str(index),
            )
        )

    if record.business_hours is not None:
        chunks.append(
            _chunk(
                ns, "business_hours", FEED_SOURCE,
                f"Business Hours:\n{format_business_hours(record.business_hours)}",
            )
        )

    enabled = [m for m in record.payment_methods if m.enabled]
    if enabled:
        payment_info = "\n".join(
            f"{m.type}: {m.details}" if m.details else m.type for m in enabled
        )
        chunks.append(
            _chunk(ns, "payment_methods", FEED_SOURCE, f"Accepted Payment Methods:\n{payment_info}")
        )

    for index, custom in enumerate(record.custom_responses):
        chunks.append(
            _chunk(
                ns, "custom_response", FEED_SOURCE,
                f"Trigger: {custom.trigger}\nResponse: {custom.response}",
                responseId=custom.id or str(index),
            )
        )

    return chunks


# ---------------------------------------------------------------------------
# RECORD SOURCE TEST DOUBLE
# ---------------------------------------------------------------------------


class InMemoryBusinessRecordSource:
    """Dict-backed BusinessRecordSource for tests and local development."""

    def __init__(self, records: list[BusinessRecord] | None = None):
        self._records: dict[str, BusinessRecord] = {}
        self._lock = threading.Lock()
        for record in records or []:
            self.put(record)

    def put(self, record: BusinessRecord) -> None:
        with self._lock:
            self._records[record.namespace_id] = record

    def remove(self, namespace_id: str) -> None:
        with self._lock:
            self._records.pop(namespace_id, None)

    def fetch(self, namespace_id: str) -> BusinessRecord | None:
        with self._lock:
            return self._records.get(namespace_id)
