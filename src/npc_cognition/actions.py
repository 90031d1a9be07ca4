"""
Built-in action handlers and the dispatcher that routes action strings.

Each action string is tokenised shell-style. Its first token selects a
registered handler; anything else is handed to the world-command runner.
"""

import shlex
from typing import Callable, Optional

import structlog

from .action_registry import ActionContext, ActionRegistry
from .command_runner import CommandRunner
from .errors import ActionError
from .models import ActionResult, BookPage, CommandFailure, Position

logger = structlog.get_logger(__name__)

WORLD_COMMAND = "world_command"


def _normalise(text: str) -> str:
    return " ".join(text.split())


def _content(args: list[str], start: int, what: str) -> str:
    if len(args) <= start:
        raise ActionError(f"missing {what}")
    content = _normalise(" ".join(args[start:]))
    if not content:
        raise ActionError(f"{what} must not be empty")
    return content


def _operation(args: list[str], kind: str, allowed: tuple[str, ...]) -> str:
    if not args:
        raise ActionError(f"{kind} needs an operation: {', '.join(allowed)}")
    op = args[0].lower()
    if op not in allowed:
        raise ActionError(f"unknown {kind} operation '{args[0]}', expected one of: {', '.join(allowed)}")
    return op


def _level(value: str, name: str) -> float:
    try:
        return float(value)
    except ValueError:
        raise ActionError(f"{name} must be a number, got '{value}'")


def handle_contact(ctx: ActionContext, args: list[str]) -> str:
    op = _operation(args, "contact", ("add", "remove"))
    if len(args) < 2:
        raise ActionError("contact needs a name")
    name = args[1]
    if op == "remove":
        if not ctx.memory.remove_contact(name):
            raise ActionError(f"no contact named '{name}'")
        return f"removed contact {name}"
    if len(args) < 4:
        raise ActionError("usage: contact add <name> <relationship> '<notes>' [enmity] [friendship]")
    peer = ctx.peers.find_agent(name)
    ctx.memory.add_or_update_contact(
        name,
        contact_id=peer.id if peer else None,
        relationship=args[2],
        notes=_normalise(args[3]),
        enmity_level=_level(args[4], "enmity") if len(args) > 4 else None,
        friendship_level=_level(args[5], "friendship") if len(args) > 5 else None,
    )
    return f"saved contact {name}"


def handle_location(ctx: ActionContext, args: list[str]) -> str:
    op = _operation(args, "location", ("add", "remove"))
    if len(args) < 2:
        raise ActionError("location needs a name")
    name = args[1]
    if op == "remove":
        if not ctx.memory.delete_location(name):
            raise ActionError(f"no location named '{name}'")
        return f"removed location {name}"
    description = _content(args, 2, "location description")
    position = ctx.snapshot.world.position if ctx.snapshot else Position()
    ctx.memory.save_location(name, position, description)
    return f"saved location {name} at {position.x},{position.y},{position.z}"


def handle_mail(ctx: ActionContext, args: list[str]) -> str:
    op = _operation(args, "mail", ("send", "read"))
    if op == "read":
        limit = int(_level(args[1], "limit")) if len(args) > 1 else 5
        messages = ctx.mail.select_by_recipient(ctx.agent.id, limit=limit, unread_only=True)
        if not messages:
            ctx.feedback("No unread mail.")
            return "no unread mail"
        ctx.mail.mark_as_read([m.id for m in messages if m.id is not None])
        lines = [f"- from {m.sender_name}: {m.content}" for m in reversed(messages)]
        ctx.feedback("Mail:\n" + "\n".join(lines))
        return f"read {len(messages)} message(s)"
    if len(args) < 2:
        raise ActionError("usage: mail send <agent_name> '<message>'")
    recipient = ctx.peers.find_agent(args[1])
    if recipient is None:
        raise ActionError(f"no agent named '{args[1]}'")
    if recipient.id == ctx.agent.id:
        raise ActionError("cannot send mail to yourself")
    content = _content(args, 2, "message")
    ctx.peers.send_direct_message(ctx.agent.id, recipient.id, content)
    return f"mail sent to {recipient.name}"


def handle_private_book(ctx: ActionContext, args: list[str]) -> str:
    op = _operation(args, "privatebook", ("add", "remove"))
    if len(args) < 2:
        raise ActionError("privatebook needs a page title")
    title = args[1]
    if op == "remove":
        if not ctx.memory.remove_page(title):
            raise ActionError(f"no private page titled '{title}'")
        return f"removed private page {title}"
    ctx.memory.write_page(title, _content(args, 2, "page content"))
    return f"saved private page {title}"


def handle_shared_book(ctx: ActionContext, args: list[str]) -> str:
    op = _operation(args, "sharedbook", ("add", "remove"))
    if len(args) < 2:
        raise ActionError("sharedbook needs a page title")
    title = args[1]
    if op == "remove":
        if not ctx.shared_book.delete(title, ctx.agent.id):
            raise ActionError(f"no shared page titled '{title}' authored by you")
        return f"removed shared page {title}"
    page = BookPage(
        title=title,
        content=_content(args, 2, "page content"),
        author_id=ctx.agent.id,
        author_name=ctx.agent.name,
    )
    ctx.shared_book.upsert(page, ctx.config.max_sharebook_pages)
    return f"saved shared page {title}"


def default_action_registry() -> ActionRegistry:
    """Registry holding every built-in memory, mail and book action."""
    registry = ActionRegistry()
    registry.register_simple(
        "contact",
        handle_contact,
        [
            "contact add <name> <relationship> '<notes>' [enmity] [friendship]",
            "contact remove <name>",
        ],
    )
    registry.register_simple(
        "location",
        handle_location,
        ["location add <name> '<description>'", "location remove <name>"],
    )
    registry.register_simple(
        "mail",
        handle_mail,
        ["mail send <agent_name> '<message>'", "mail read [limit]"],
    )
    registry.register_simple(
        "privatebook",
        handle_private_book,
        ["privatebook add <title> '<content>'", "privatebook remove <title>"],
    )
    registry.register_simple(
        "sharedbook",
        handle_shared_book,
        ["sharedbook add <title> '<content>'", "sharedbook remove <title>"],
    )
    return registry


class ActionDispatcher:
    """Executes a turn's actions strictly in order."""

    def __init__(
        self,
        registry: ActionRegistry,
        command_runner: CommandRunner,
        stop_on_command_failure: bool = False,
    ):
        self.registry = registry
        self.command_runner = command_runner
        self.stop_on_command_failure = stop_on_command_failure

    def dispatch(
        self,
        actions: list[str],
        ctx: ActionContext,
        on_command_failure: Optional[Callable[[str], None]] = None,
    ) -> list[ActionResult]:
        """Run every action and return one result per action that ran.

        Failures of recognised actions are reported and skipped. A failed
        world command sends explanatory text to ``on_command_failure`` and,
        when ``stop_on_command_failure`` is set, ends the turn's actions.
        """
        report = on_command_failure or ctx.feedback
        results: list[ActionResult] = []
        for action in actions:
            result = self._dispatch_one(action, ctx, report)
            results.append(result)
            if (
                not result.success
                and result.kind == WORLD_COMMAND
                and self.stop_on_command_failure
            ):
                skipped = len(actions) - len(results)
                if skipped:
                    logger.info(
                        "remaining_actions_skipped",
                        agent_id=ctx.agent.id,
                        failed_action=action,
                        skipped=skipped,
                    )
                break
        return results

    def _dispatch_one(
        self, action: str, ctx: ActionContext, report: Callable[[str], None]
    ) -> ActionResult:
        action = action.strip()
        try:
            tokens = shlex.split(action)
        except ValueError:
            tokens = action.split()
        verb = tokens[0].lower() if tokens else ""
        spec = self.registry.get(verb)

        if spec is None:
            return self._run_world_command(action, ctx, report)

        try:
            detail = spec.handler(ctx, tokens[1:])
        except ActionError as e:
            logger.warning(
                "action_rejected", agent_id=ctx.agent.id, action=action, reason=str(e)
            )
            return ActionResult(action=action, kind=spec.name, success=False, detail=str(e))
        except Exception as e:
            logger.exception("action_failed", agent_id=ctx.agent.id, action=action)
            return ActionResult(action=action, kind=spec.name, success=False, detail=str(e))
        logger.debug("action_done", agent_id=ctx.agent.id, action=action, detail=detail)
        return ActionResult(action=action, kind=spec.name, success=True, detail=detail)

    def _run_world_command(
        self, command: str, ctx: ActionContext, report: Callable[[str], None]
    ) -> ActionResult:
        def on_failure(failure: CommandFailure) -> None:
            report(self.command_runner.feedback_for(failure))

        failure = self.command_runner.run(command, on_failure)
        if failure is not None:
            return ActionResult(
                action=command, kind=WORLD_COMMAND, success=False, detail=failure.reason
            )
        return ActionResult(action=command, kind=WORLD_COMMAND, success=True)
