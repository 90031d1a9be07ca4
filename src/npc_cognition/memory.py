"""Per-agent memory facade over the contact, location and private-book stores."""

from typing import Optional

import structlog

from .config import BaseConfig
from .models import BookPage, Contact, LocationMemory, Position, now_ms
from .repositories import ContactRepository, LocationRepository, PrivateBookRepository

logger = structlog.get_logger(__name__)


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class MemoryManager:
    """What one agent remembers about people, places and its own notes."""

    def __init__(
        self,
        agent_id: str,
        agent_name: str,
        contacts: ContactRepository,
        locations: LocationRepository,
        private_book: PrivateBookRepository,
        config: BaseConfig,
    ):
        self.agent_id = agent_id
        self.agent_name = agent_name
        self.contacts = contacts
        self.locations = locations
        self.private_book = private_book
        self.config = config

    # Locations

    def save_location(self, name: str, position: Position, description: str) -> LocationMemory:
        location = LocationMemory(
            agent_id=self.agent_id, name=name, position=position, description=description
        )
        self.locations.upsert(location, self.config.max_locations)
        logger.debug("location_saved", agent_id=self.agent_id, location=name)
        return location

    def get_locations(self) -> list[LocationMemory]:
        return self.locations.select_by_agent(self.agent_id, self.config.max_locations)

    def get_location(self, name: str) -> Optional[LocationMemory]:
        return self.locations.get(self.agent_id, name)

    def delete_location(self, name: str) -> bool:
        return self.locations.delete(self.agent_id, name)

    # Contacts

    def add_or_update_contact(
        self,
        contact_name: str,
        contact_id: Optional[str] = None,
        relationship: Optional[str] = None,
        notes: Optional[str] = None,
        enmity_level: Optional[float] = None,
        friendship_level: Optional[float] = None,
    ) -> Contact:
        """Upsert a contact; fields left as ``None`` keep their stored value."""
        existing = self.contacts.get(self.agent_id, contact_name)
        base = existing or Contact(agent_id=self.agent_id, contact_name=contact_name)
        contact = base.model_copy(
            update={
                "contact_name": contact_name,
                "contact_id": contact_id if contact_id is not None else base.contact_id,
                "relationship": relationship if relationship is not None else base.relationship,
                "notes": notes if notes is not None else base.notes,
                "enmity_level": _clamp(
                    enmity_level if enmity_level is not None else base.enmity_level
                ),
                "friendship_level": _clamp(
                    friendship_level if friendship_level is not None else base.friendship_level
                ),
                "last_seen": now_ms(),
            }
        )
        self.contacts.upsert(contact, self.config.max_contacts)
        return contact

    def get_contacts(self) -> list[Contact]:
        return self.contacts.select_by_agent(self.agent_id, self.config.max_contacts)

    def get_contact(self, name: str) -> Optional[Contact]:
        return self.contacts.get(self.agent_id, name)

    def remove_contact(self, name: str) -> bool:
        return self.contacts.delete(self.agent_id, name)

    def update_contact_last_seen(self, name: str) -> None:
        contact = self.get_contact(name)
        if contact is None:
            return
        self.contacts.upsert(
            contact.model_copy(update={"last_seen": now_ms()}), self.config.max_contacts
        )

    def annotate_contact(self, name: str, note: str) -> Optional[Contact]:
        """Append ``note`` to an existing contact's notes."""
        contact = self.get_contact(name)
        if contact is None:
            return None
        notes = f"{contact.notes} {note}".strip() if contact.notes else note
        return self.add_or_update_contact(name, notes=notes)

    # Private book

    def write_page(self, title: str, content: str) -> BookPage:
        page = BookPage(
            title=title, content=content, author_id=self.agent_id, author_name=self.agent_name
        )
        self.private_book.upsert(self.agent_id, page, self.config.max_private_pages)
        return page

    def get_pages(self) -> list[BookPage]:
        return self.private_book.select_by_agent(self.agent_id, self.config.max_private_pages)

    def remove_page(self, title: str) -> bool:
        return self.private_book.delete(self.agent_id, title)

    def cleanup(self) -> None:
        """Forget everything stored for this agent."""
        self.contacts.delete_by_agent(self.agent_id)
        self.locations.delete_by_agent(self.agent_id)
        self.private_book.delete_by_agent(self.agent_id)
        logger.info("memory_cleared", agent_id=self.agent_id)
