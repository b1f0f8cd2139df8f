from datetime import datetime
from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, field_validator


class LinkPrecedence(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


class Contact(BaseModel):
    """One row of the Contact table."""

    id: int
    email: Optional[str] = None
    phoneNumber: Optional[str] = None
    linkedId: Optional[int] = None
    linkPrecedence: LinkPrecedence
    createdAt: datetime
    updatedAt: datetime
    deletedAt: Optional[datetime] = None

    @property
    def is_primary(self) -> bool:
        return self.linkPrecedence == LinkPrecedence.PRIMARY

    @property
    def primary_id(self) -> Optional[int]:
        """Id of the primary this contact is consolidated under."""
        return self.id if self.is_primary else self.linkedId

    @property
    def election_key(self):
        return (self.createdAt, self.id)


def _clean_identifier(value):
    # blank identifiers carry no fact; numeric phone numbers arrive from JSON clients
    if value is None:
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        value = str(value)
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


class IdentifyRequest(BaseModel):
    email: Optional[str] = None
    phoneNumber: Optional[str] = None

    @field_validator("email", "phoneNumber", mode="before")
    @classmethod
    def _clean_identifiers(cls, value):
        return _clean_identifier(value)


class ContactResponse(BaseModel):
    primaryContatctId: int
    emails: List[str]
    phoneNumbers: List[str]
    secondaryContactIds: List[int]


class FinalResponse(BaseModel):
    contact: ContactResponse


class AddContactRequest(BaseModel):
    id: Optional[int] = None
    email: Optional[str] = None
    phoneNumber: Optional[str] = None
    linkedId: Optional[int] = None
    linkPrecedence: LinkPrecedence = LinkPrecedence.PRIMARY
    createdAt: Optional[datetime] = None

    @field_validator("email", "phoneNumber", mode="before")
    @classmethod
    def _clean_identifiers(cls, value):
        return _clean_identifier(value)
