"""
Per-agent cognitive loop.

Every history mutation and model call of one agent runs on that agent's
single worker thread. At most one task runs and ``queue_capacity`` tasks
wait; anything beyond that is discarded.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable, Optional

import structlog

from .action_registry import ActionContext
from .actions import ActionDispatcher
from .agent_prompts import context_only_prompt
from .context import format_structured
from .errors import user_facing_message
from .history import ConversationHistory
from .interfaces import ChatSink, ContextBuilder, LanguageModelClient
from .models import AgentProfile, ContextSnapshot, ConversationTurn, Role, StructuredResponse
from .response_parser import parse_response, tool_calls_to_actions

logger = structlog.get_logger(__name__)

ActionContextFactory = Callable[[ContextSnapshot, Callable[[str], None]], ActionContext]


class CognitiveLoop:
    """Buffers stimuli into history and runs think-act-speak cycles for one agent."""

    def __init__(
        self,
        profile: AgentProfile,
        history: ConversationHistory,
        llm: LanguageModelClient,
        context_builder: ContextBuilder,
        dispatcher: ActionDispatcher,
        make_action_context: ActionContextFactory,
        chat_sink: ChatSink,
        queue_capacity: int = 1,
        verbose: bool = False,
    ):
        self.profile = profile
        self.history = history
        self.llm = llm
        self.context_builder = context_builder
        self.dispatcher = dispatcher
        self.make_action_context = make_action_context
        self.chat_sink = chat_sink
        self.queue_capacity = queue_capacity
        self.verbose = verbose

        self._pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"agent-{profile.id}")
        self._lock = threading.Lock()
        self._outstanding = 0
        self._futures: set[Future] = set()
        self._closed = False
        self._worker_ident: Optional[int] = None
        self._in_cycle = False
        self._pending_feedback: list[str] = []
        self.dropped = 0

    @property
    def agent_id(self) -> str:
        return self.profile.id

    def is_idle(self) -> bool:
        """True when nothing is running or waiting on this agent's worker."""
        with self._lock:
            return self._outstanding == 0

    def update_state(self, text: str) -> Optional[Future]:
        """Append ``text`` as a user turn without calling the model.

        Returns None when the queue is full or the loop is stopped. Calls made
        from inside a running cycle are appended after its assistant turn.
        """
        if self._in_cycle and threading.get_ident() == self._worker_ident:
            self._pending_feedback.append(text)
            return None
        return self._submit(lambda: self.history.append(Role.USER, text))

    def process_llm(self) -> Future:
        """Queue one full cycle; the future resolves to True on success."""
        future = self._submit(self._run_cycle)
        if future is None:
            rejected: Future = Future()
            rejected.set_result(False)
            return rejected
        return future

    def stop(self, timeout: float = 5.0) -> bool:
        """Stop accepting work, wait up to ``timeout`` for queued tasks, then cancel.

        Returns True when the queue drained in time.
        """
        with self._lock:
            self._closed = True
            pending = set(self._futures)
        _, not_done = wait(pending, timeout=timeout)
        self._pool.shutdown(wait=False, cancel_futures=True)
        if not_done:
            logger.warning(
                "agent_queue_not_drained", agent_id=self.agent_id, pending=len(not_done)
            )
        return not not_done

    def _submit(self, task: Callable) -> Optional[Future]:
        with self._lock:
            if self._closed:
                return None
            if self._outstanding > self.queue_capacity:
                self.dropped += 1
                logger.debug("agent_task_discarded", agent_id=self.agent_id)
                return None
            self._outstanding += 1
            future = self._pool.submit(self._run_task, task)
            self._futures.add(future)
        future.add_done_callback(self._forget)
        return future

    def _run_task(self, task: Callable):
        self._worker_ident = threading.get_ident()
        try:
            return task()
        finally:
            with self._lock:
                self._outstanding -= 1

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._futures.discard(future)

    def _run_cycle(self) -> bool:
        profile = self.profile
        log = logger.bind(agent_id=profile.id, agent_name=profile.name)
        self._in_cycle = True
        self._pending_feedback = []
        try:
            self.history.perform_summarization_if_needed()

            window = self.history.window()
            snapshot = self.context_builder.build_context(profile)
            if window[-1].role == Role.USER:
                last = window[-1]
                window[-1] = last.model_copy(
                    update={"content": format_structured(last.content, snapshot)}
                )
            else:
                window.append(
                    ConversationTurn(
                        agent_id=profile.id,
                        role=Role.USER,
                        content=format_structured(context_only_prompt(), snapshot),
                    )
                )

            reply = self.llm.chat(window)
            response = parse_response(reply.text)
            actions = response.actions + tool_calls_to_actions(reply.tool_calls)

            ctx = self.make_action_context(snapshot, self.update_state)
            results = self.dispatcher.dispatch(actions, ctx)

            if response.has_message() and (
                response.message.strip() != self.history.last_message().strip()
            ):
                self.chat_sink.say(profile, response.message)

            raw = reply.text
            if not raw.strip():
                raw = StructuredResponse(
                    thought=response.thought, actions=actions, message=response.message
                ).to_json()
            self.history.append(Role.ASSISTANT, raw)

            log.info(
                "llm_cycle_completed",
                actions=len(actions),
                failed_actions=sum(1 for r in results if not r.success),
                spoke=response.has_message(),
            )
            return True
        except Exception as e:
            log.exception("llm_cycle_failed", error=str(e))
            if self.verbose:
                self.chat_sink.debug(profile, user_facing_message(e))
            return False
        finally:
            self._in_cycle = False
            self._flush_feedback(log)

    def _flush_feedback(self, log) -> None:
        pending, self._pending_feedback = self._pending_feedback, []
        for text in pending:
            try:
                self.history.append(Role.USER, text)
            except Exception:
                log.exception("feedback_append_failed")
