"""Cross-agent notifications and direct messages."""

from typing import Optional

import structlog

from .config import BaseConfig
from .interfaces import ChatSink, PeerNotifier
from .models import AgentProfile, MailMessage
from .repositories import MailRepository
from .roster import AgentRoster

logger = structlog.get_logger(__name__)


class CoordinationService(PeerNotifier):
    """Lets agents push state into each other's histories without a model call."""

    def __init__(
        self,
        roster: AgentRoster,
        mail: MailRepository,
        chat_sink: ChatSink,
        config: BaseConfig,
    ):
        self.roster = roster
        self.mail = mail
        self.chat_sink = chat_sink
        self.config = config

    def update_state(self, target_agent_id: str, text: str) -> bool:
        """Queue ``text`` for the target; False when unknown or the queue is full."""
        runtime = self.roster.get(target_agent_id)
        if runtime is None:
            logger.debug("update_state_unknown_agent", agent_id=target_agent_id)
            return False
        return runtime.loop.update_state(text) is not None

    def find_agent(self, name: str) -> Optional[AgentProfile]:
        runtime = self.roster.find_by_name(name)
        return runtime.profile if runtime else None

    def active_agents(self) -> list[AgentProfile]:
        return [rt.profile for rt in self.roster.all() if rt.profile.active]

    def broadcast(self, text: str, exclude: Optional[str] = None) -> int:
        """Send ``text`` to every agent except ``exclude``; returns how many accepted it."""
        delivered = 0
        for runtime in self.roster.all():
            if runtime.profile.id == exclude:
                continue
            try:
                if runtime.loop.update_state(text) is not None:
                    delivered += 1
            except Exception:
                logger.exception("broadcast_failed", agent_id=runtime.profile.id)
        return delivered

    def notify_agent_added(self, profile: AgentProfile) -> None:
        """Announce a newcomer and make it and every existing agent mutual contacts."""
        self.broadcast(
            f"Agent '{profile.name}' has joined the world. You can now interact with them.",
            exclude=profile.id,
        )
        newcomer = self.roster.get(profile.id)
        for runtime in self.roster.all():
            if runtime.profile.id == profile.id:
                continue
            try:
                runtime.memory.add_or_update_contact(
                    profile.name,
                    contact_id=profile.id,
                    relationship="neutral",
                    notes="Recently joined the world",
                )
                if newcomer is not None:
                    newcomer.memory.add_or_update_contact(
                        runtime.profile.name,
                        contact_id=runtime.profile.id,
                        relationship="neutral",
                        notes="Existing agent in the world",
                    )
            except Exception:
                logger.exception(
                    "contact_introduction_failed",
                    agent_id=runtime.profile.id,
                    newcomer_id=profile.id,
                )

    def notify_agent_removed(self, name: str, agent_id: str) -> None:
        self.broadcast(f"Agent '{name}' has left the world.", exclude=agent_id)
        self._annotate_contacts(name, agent_id, "Left the world.")

    def notify_agent_death(self, name: str, agent_id: str) -> None:
        self.broadcast(f"Agent '{name}' has died and will respawn.", exclude=agent_id)
        self._annotate_contacts(name, agent_id, "Died, will respawn.")

    def send_direct_message(self, from_agent_id: str, to_agent_id: str, text: str) -> None:
        """Store mail, echo it to chat, queue it for the recipient and refresh last-seen."""
        sender = self.roster.get(from_agent_id)
        recipient = self.roster.get(to_agent_id)
        if sender is None or recipient is None:
            logger.warning(
                "direct_message_undeliverable", from_agent_id=from_agent_id, to_agent_id=to_agent_id
            )
            return
        sender_name = sender.profile.name
        recipient_name = recipient.profile.name

        self.mail.insert(
            MailMessage(
                recipient_id=to_agent_id,
                sender_id=from_agent_id,
                sender_name=sender_name,
                subject=f"Direct message from {sender_name}",
                content=text,
            ),
            self.config.max_messages,
        )
        self.chat_sink.say(sender.profile, f"{sender_name} says to {recipient_name}: {text}")
        recipient.loop.update_state(f"{sender_name} says to you: {text}")
        recipient.memory.update_contact_last_seen(sender_name)
        logger.info(
            "direct_message_sent", from_agent_id=from_agent_id, to_agent_id=to_agent_id
        )

    def _annotate_contacts(self, name: str, agent_id: str, note: str) -> None:
        for runtime in self.roster.all():
            if runtime.profile.id == agent_id:
                continue
            try:
                runtime.memory.annotate_contact(name, note)
            except Exception:
                logger.exception("contact_annotation_failed", agent_id=runtime.profile.id)
