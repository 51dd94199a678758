from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict

DOCUMENT_TYPES = (
    "NIC Copy",
    "Guardian NIC",
    "Bank Statement",
    "Customer Photo",
    "Address Proof",
    "Income Proof",
    "Application Form",
    "Family Card",
)

REQUIRED_DOCUMENTS = (
    "NIC Copy",
    "Guardian NIC",
    "Bank Statement",
)

ALLOWED_CONTENT_TYPES = (
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/gif",
    "application/pdf",
)


class AttachedFile(BaseModel):
    """A document picked in the wizard but not yet uploaded."""

    filename: str
    content_type: str
    content: bytes

    model_config = ConfigDict(frozen=True, ser_json_bytes="base64", val_json_bytes="base64")

    @property
    def size(self) -> int:
        return len(self.content)


class DocumentRef(BaseModel):
    """A document already stored by the backend (or inherited from the customer profile)."""

    type: str
    url: str = ""
    file_name: str = ""
    id: Optional[str] = None
    from_profile: bool = False

    model_config = ConfigDict(frozen=True)
