"""Simple example of two scripted agents talking through the cognition core."""

import json
import tempfile
from pathlib import Path

from npc_cognition import AgentService, BaseConfig
from npc_cognition.executor_adapter import RecordingChatSink, StubCommandExecutor
from npc_cognition.llm_client import ScriptedLanguageModel
from npc_cognition.models import AgentProfile


def main():
    """Run a simple example."""
    model = ScriptedLanguageModel(
        [
            json.dumps(
                {
                    "thought": "Sam should know about the ore.",
                    "actions": ["mail send Sam 'Iron by the river'", "goto 10 64 -3"],
                    "message": "Heading to the river.",
                }
            ),
            json.dumps({"actions": ["mine:iron_ore"], "message": "On my way!"}),
        ]
    )
    chat = RecordingChatSink()

    with tempfile.TemporaryDirectory() as tmp:
        config = BaseConfig(database_path=str(Path(tmp) / "example.db"))
        service = AgentService(
            config,
            command_executor=StubCommandExecutor(commands=["mine", "goto", "craft"]),
            chat_sink=chat,
            llm_factory=lambda name, backend: model,
        )
        alex = service.spawn(AgentProfile(id="agent-1", name="Alex"))
        sam = service.spawn(AgentProfile(id="agent-2", name="Sam"))

        print("Running one cycle for Alex, then one for Sam")
        print("=" * 60)
        alex.loop.process_llm().result(timeout=10)
        sam.loop.process_llm().result(timeout=10)

        for name, line in chat.lines:
            print(f"[{name}] {line}")

        print("\n" + "=" * 60)
        print("Sam's history:")
        for turn in sam.loop.history.turns():
            print(f"  {turn.role.value}: {turn.content}")
        service.shutdown()


if __name__ == "__main__":
    main()
