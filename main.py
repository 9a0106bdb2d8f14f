"""persona-rooms: dev chat launcher. Talks to one character from the terminal."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from persona_rooms import (
    ErrorResult,
    Framework,
    User,
    ValidationError,
    load_settings,
)

ROOT = Path(__file__).parent


async def chat(character_path: Path, user_name: str, data_dir: Path | None) -> int:
    settings = load_settings(ROOT / ".env")
    if data_dir is not None:
        settings.data_dir = data_dir
    logging.basicConfig(level=settings.log_level, format="%(levelname)s %(name)s: %(message)s")

    framework = Framework.from_settings(settings)
    await framework.start()

    definition = json.loads(character_path.read_text())
    try:
        framework.validate_character(definition)
    except ValidationError as e:
        for issue in e.issues:
            print(f"  {issue}", file=sys.stderr)
        return 1

    character = await framework.get_or_create_character(definition)
    await framework.load_character(character)

    user = User(id="local-user", name=user_name)
    conversation = await framework.create_conversation(character, [user])
    print(f"Talking to {character.name} (conversation {conversation.id}). Ctrl-D to quit.")

    try:
        while True:
            try:
                line = await asyncio.to_thread(input, "> ")
            except EOFError:
                break
            if not line.strip():
                continue
            result = await framework.send_to_conversation(conversation, line, user.id)
            if isinstance(result, ErrorResult):
                print(f"[{result.status}] {result.message}")
                continue
            if result.content:
                print(f"{character.name}: {result.content}")
            for call in result.calls:
                print(f"  -> {call.name}({json.dumps(call.parameters)}) {call.message}")
    finally:
        await framework.finish_conversation(conversation)
        await framework.stop()
    return 0


def main():
    parser = argparse.ArgumentParser(description="persona-rooms dev chat launcher")
    parser.add_argument("--character", type=Path, required=True,
                        help="Path to a character definition JSON file")
    parser.add_argument("--user", default="Player",
                        help="Display name for the local user (default: Player)")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="JSON storage directory (default: DATA_DIR or in-memory)")
    args = parser.parse_args()
    sys.exit(asyncio.run(chat(args.character, args.user, args.data_dir)))


if __name__ == "__main__":
    main()
