"""Identity reconciliation.

Given one observation (email and/or phone) this module finds every cluster the
observation touches, records any fact the clusters have not seen yet, collapses
the clusters under the oldest primary and returns the consolidated view. The
store is passed in per call and nothing is cached between calls.
"""

from datetime import datetime
from typing import List, Optional

import structlog

from contact_store import ContactStore
from db_models import Contact, ContactResponse, LinkPrecedence
from errors import InvalidRequest

logger = structlog.get_logger()


def reconcile(store: ContactStore, email: Optional[str] = None, phone: Optional[str] = None) -> ContactResponse:
    if email is None and phone is None:
        raise InvalidRequest()

    with store.transaction():
        matches = store.find_by_email_or_phone(email, phone)

        if not matches:
            contact = store.insert(email, phone, LinkPrecedence.PRIMARY)
            logger.info("Created primary contact", contact_id=contact.id)
            return materialize(contact, [contact])

        contacts = expand_clusters(store, matches)

        if _has_new_fact(contacts, email, phone):
            primary = elect_primary(contacts)
            contact = store.insert(email, phone, LinkPrecedence.SECONDARY, primary.id)
            logger.info("Created secondary contact", contact_id=contact.id, primary_id=primary.id)
            contacts.append(contact)

        primary = merge_clusters(store, contacts)
        contacts = store.find_by_ids(c.id for c in contacts)

    return materialize(primary, contacts)


def expand_clusters(store: ContactStore, matches: List[Contact]) -> List[Contact]:
    """Return every live contact connected to the direct matches.

    Links are followed both ways until nothing new turns up, so chains left
    behind by older single-level merges still resolve to their real primary.
    """
    found = {c.id: c for c in matches}
    expanded = set()
    frontier = {c.id for c in matches} | {c.primary_id for c in matches}

    while frontier:
        expanded |= frontier
        for contact in store.find_by_ids_or_linked_id(frontier):
            found[contact.id] = contact
        linked = {c.linkedId for c in found.values() if c.linkedId is not None}
        frontier = (set(found) | linked) - expanded

    return store.find_by_ids(found)


def _has_new_fact(contacts: List[Contact], email: Optional[str], phone: Optional[str]) -> bool:
    known_emails = {c.email for c in contacts if c.email is not None}
    known_phones = {c.phoneNumber for c in contacts if c.phoneNumber is not None}
    return (email is not None and email not in known_emails) or (
        phone is not None and phone not in known_phones
    )


def elect_primary(contacts: List[Contact]) -> Contact:
    """Earliest-created primary wins; ties go to the lower id.

    When no member is flagged primary (its primary was soft-deleted) the
    earliest member overall is chosen.
    """
    primaries = [c for c in contacts if c.is_primary]
    return min(primaries or contacts, key=lambda c: c.election_key)


def merge_clusters(store: ContactStore, contacts: List[Contact]) -> Contact:
    """Point every member of the combined set directly at the elected primary."""
    primary = elect_primary(contacts)

    if not primary.is_primary:
        store.update(primary.id, LinkPrecedence.PRIMARY, None)
        logger.info("Promoted orphaned contact to primary", contact_id=primary.id)

    for contact in contacts:
        if contact.id == primary.id:
            continue
        if contact.is_primary or contact.linkedId != primary.id:
            store.update(contact.id, LinkPrecedence.SECONDARY, primary.id)
            logger.info(
                "Relinked contact",
                contact_id=contact.id,
                was=contact.linkPrecedence.value,
                previous_linked_id=contact.linkedId,
                primary_id=primary.id,
            )

    return primary


def materialize(primary: Contact, contacts: List[Contact]) -> ContactResponse:
    others = sorted((c for c in contacts if c.id != primary.id), key=lambda c: c.election_key)
    ordered = [c for c in contacts if c.id == primary.id] + others

    emails = []
    phone_numbers = []
    for contact in ordered:
        if contact.email is not None and contact.email not in emails:
            emails.append(contact.email)
        if contact.phoneNumber is not None and contact.phoneNumber not in phone_numbers:
            phone_numbers.append(contact.phoneNumber)

    return ContactResponse(
        primaryContatctId=primary.id,
        emails=emails,
        phoneNumbers=phone_numbers,
        secondaryContactIds=[c.id for c in others],
    )


def add_contact(
    store: ContactStore,
    *,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    link_precedence: LinkPrecedence = LinkPrecedence.PRIMARY,
    linked_id: Optional[int] = None,
    contact_id: Optional[int] = None,
    created_at: Optional[datetime] = None,
) -> Contact:
    """Insert a contact as given, refusing records that would break cluster invariants."""
    if email is None and phone is None:
        raise InvalidRequest()
    if link_precedence == LinkPrecedence.PRIMARY and linked_id is not None:
        raise InvalidRequest("A primary contact cannot have a linkedId")
    if link_precedence == LinkPrecedence.SECONDARY and linked_id is None:
        raise InvalidRequest("A secondary contact requires a linkedId")

    with store.transaction():
        if contact_id is not None and store.id_taken(contact_id):
            raise InvalidRequest(f"Contact {contact_id} already exists")
        if linked_id is not None:
            target = store.get(linked_id)
            if target is None or not target.is_primary:
                raise InvalidRequest(f"linkedId {linked_id} does not refer to a primary contact")
        contact = store.insert(
            email,
            phone,
            link_precedence,
            linked_id,
            contact_id=contact_id,
            created_at=created_at,
        )

    logger.info("Added contact", contact_id=contact.id, link_precedence=contact.linkPrecedence.value)
    return contact
