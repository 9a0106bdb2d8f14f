"""Message pipeline.

Executes one inbound message against a conversation's bound runtime:
  1. Resolve the room binding (404 "Room not found" if absent).
  2. Resolve the sender's display name from the roster (404 "User not found").
  3. Store the inbound message as an embedded memory.
  4. Build a context provider rendering caller facts as "k=v,k=v".
  5. Install the character's declared actions (always valid; the handler
     generates parameters and a message).
  6. Compose state, render the dialogue template, generate the reply
     (500 "Failed to generate message" if unusable).
  7. Store the reply as an embedded memory.
  8. Refresh the recent-message state.
  9. Process actions; the handler's message is captured by a collector
     (500 "Failed to generate parameters" if the action output is unusable).
 10. Run post-response evaluators.
 11. Drop the dialogue text when the selected action suppresses the initial
     message; assemble {content, calls}.

Installed actions and the context provider are passed to the runtime per
call; the runtime's own action and provider lists are never overwritten.
"""

from .actions import (  # noqa: F401
    action_output_schema,
    build_action_prompt,
    generate_action_call,
    install_actions,
    remap_parameters,
)
from .core import ContextProvider, send_to_conversation  # noqa: F401
