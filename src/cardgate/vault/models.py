"""Data models for the credential vault."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BillingAddress(BaseModel):
    """Postal address attached to a card."""

    line1: str
    line2: str | None = None
    city: str
    state: str
    postal_code: str
    country: str


class Credential(BaseModel):
    """A stored payment card.

    ``number`` and ``cvv`` are excluded from ``repr()`` so that a stray
    ``logger.debug("%r", credential)`` never writes card data to a log.
    """

    model_config = ConfigDict(frozen=True)

    cardholder_name: str
    number: str = Field(..., repr=False)
    exp_month: str
    exp_year: str
    cvv: str = Field(..., repr=False)
    billing_address: BillingAddress | None = None

    @field_validator("number")
    @classmethod
    def _strip_whitespace(cls, value: str) -> str:
        return "".join(value.split())

    @property
    def last4(self) -> str:
        return self.number[-4:]


class EncryptedBlob(BaseModel):
    """AES-GCM output: IV, authentication tag, and ciphertext.

    Persisted as a single JSON document with hex-encoded fields.
    """

    model_config = ConfigDict(frozen=True)

    iv: bytes
    auth_tag: bytes
    data: bytes

    def to_json(self) -> bytes:
        doc = BlobDocument(iv=self.iv.hex(), auth_tag=self.auth_tag.hex(), data=self.data.hex())
        return doc.model_dump_json().encode("utf-8")

    @classmethod
    def from_json(cls, raw: bytes) -> EncryptedBlob:
        doc = BlobDocument.model_validate_json(raw)
        return cls(
            iv=bytes.fromhex(doc.iv),
            auth_tag=bytes.fromhex(doc.auth_tag),
            data=bytes.fromhex(doc.data),
        )


class BlobDocument(BaseModel):
    """On-disk JSON shape of :class:`EncryptedBlob`."""

    iv: str
    auth_tag: str
    data: str
