import json

import pytest

from persona_rooms.conversations import ConversationManager
from persona_rooms.framework import Framework, ProcessLifecycle
from persona_rooms.llm import ModelClass
from persona_rooms.registry import CharacterRegistry
from persona_rooms.storage import InMemoryStorageAdapter


class ScriptedLLM:
    """LLM double: canned responses per stage, every call recorded.

    script("dialogue", a, b) queues responses for that stage; the last
    queued response repeats once the others are used. Stages starting with
    "action:" fall back to responses scripted for "action".
    """

    def __init__(self, embedding=(0.1, 0.2, 0.3)):
        self.responses: dict[str, list[str]] = {}
        self.calls: list[tuple[str, str, ModelClass]] = []
        self.embedded: list[str] = []
        self.embedding = embedding

    def script(self, stage, *responses):
        self.responses[stage] = list(responses)
        return self

    async def __call__(self, stage, prompt, model_class=ModelClass.LARGE):
        self.calls.append((stage, prompt, model_class))
        queue = self.responses.get(stage)
        if queue is None and stage.startswith("action:"):
            queue = self.responses.get("action")
        if not queue:
            return ""
        return queue.pop(0) if len(queue) > 1 else queue[0]

    async def embed(self, text):
        self.embedded.append(text)
        return list(self.embedding) if self.embedding is not None else None

    def stages(self):
        return [c[0] for c in self.calls]

    def prompt(self, index):
        return self.calls[index][1]


def dialogue(text, action=None, user="Ava"):
    """A well-formed dialogue completion as the model would emit it."""
    body = {"user": user, "text": text}
    if action:
        body["action"] = action
    return "```json\n" + json.dumps(body) + "\n```"


def ava(**overrides):
    data = {
        "name": "Ava",
        "bio": ["Ava runs the lighthouse on the northern cliffs."],
        "lore": ["She once rowed through a storm to rescue a fisherman."],
        "knowledge": ["The lighthouse lamp burns whale oil.", "Tides peak at dusk."],
        "topics": ["the sea", "weather"],
        "adjectives": ["calm", "wry"],
        "style": ["speaks in short sentences"],
        "messageExamples": [[
            {"user": "{{user1}}", "content": "How is the sea today?"},
            {"user": "Ava", "content": "Restless. Like you."},
        ]],
        "functions": [],
    }
    data.update(overrides)
    return data


SET_MOOD = {
    "name": "setMood",
    "description": "Change Ava's visible mood.",
    "similes": ["CHANGE_MOOD"],
    "examples": [[
        {"user": "{{user1}}", "content": "You look grumpy."},
        {"user": "Ava", "content": "Fine. I'll cheer up."},
    ]],
    "parameters": [
        {"name": "mood", "description": "The new mood", "type": "string"},
    ],
}


@pytest.fixture
def adapter():
    return InMemoryStorageAdapter()


@pytest.fixture
def llm():
    return ScriptedLLM()


@pytest.fixture
def registry(adapter, llm):
    return CharacterRegistry(adapter, llm, provider="openai", api_key="sk-test")


@pytest.fixture
def manager(adapter, registry):
    return ConversationManager(adapter, registry)


@pytest.fixture
def framework(adapter, llm):
    return Framework(adapter, llm, provider="openai", api_key="sk-test", lifecycle=ProcessLifecycle())


@pytest.fixture
def make_definition():
    return ava


@pytest.fixture
def set_mood_action():
    return json.loads(json.dumps(SET_MOOD))


@pytest.fixture
def dialogue_output():
    return dialogue
