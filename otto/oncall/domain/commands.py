"""
OnCall Slash Commands
=====================

Tokenizer for the slash commands users type in issue and PR comments.

Only the first line of a comment is considered. Keywords are matched as
whole, case-sensitive tokens, so `/acknowledge` is not `/ack`, and every
`/oncall` sub-command is decided by its keyword tokens rather than by the
order patterns happen to be tried in.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

HANDLE_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

USAGE_TEXT = (
    "Usage:\n"
    "- `/oncall add user <handle> <display name>`\n"
    "- `/oncall add rotation <name>`\n"
    "- `/oncall assign <handle> to <rotation name>`"
)


class CommandKind(str, Enum):
    """Closed set of commands the on-call module understands."""
    ACK = "ack"
    ESCALATE = "escalate"
    RESOLVE = "resolve"
    ADD_USER = "add_user"
    ADD_ROTATION = "add_rotation"
    ASSIGN_USER = "assign_user"
    USAGE = "usage"


INCIDENT_COMMANDS = frozenset({CommandKind.ACK, CommandKind.ESCALATE, CommandKind.RESOLVE})

_SIMPLE_COMMANDS = {
    "/ack": CommandKind.ACK,
    "/escalate": CommandKind.ESCALATE,
    "/resolve": CommandKind.RESOLVE,
}


@dataclass(frozen=True)
class Command:
    """A recognised command and its typed arguments."""
    kind: CommandKind
    handle: Optional[str] = None
    name: Optional[str] = None
    rotation: Optional[str] = None
    message: Optional[str] = None

    @property
    def is_incident_command(self) -> bool:
        return self.kind in INCIDENT_COMMANDS


def _usage(reason: str) -> Command:
    return Command(kind=CommandKind.USAGE, message=f"{reason}\n\n{USAGE_TEXT}")


def _parse_oncall(line: str) -> Command:
    tokens = line.split()
    if len(tokens) < 2:
        return _usage("Missing `/oncall` sub-command.")

    if tokens[1] == "add":
        if len(tokens) < 3 or tokens[2] not in ("user", "rotation"):
            return _usage("`/oncall add` expects `user` or `rotation`.")

        if tokens[2] == "rotation":
            parts = line.split(None, 3)
            if len(parts) < 4:
                return _usage("Missing rotation name.")
            return Command(kind=CommandKind.ADD_ROTATION, name=parts[3].strip())

        parts = line.split(None, 4)
        if len(parts) < 5:
            return _usage("`/oncall add user` needs a handle and a display name.")
        handle = parts[3]
        if not HANDLE_PATTERN.match(handle):
            return _usage(f"`{handle}` is not a valid GitHub handle.")
        return Command(kind=CommandKind.ADD_USER, handle=handle, name=parts[4].strip())

    if tokens[1] == "assign":
        parts = line.split(None, 4)
        if len(parts) < 5 or parts[3] != "to":
            return _usage("`/oncall assign` needs `<handle> to <rotation name>`.")
        handle = parts[2]
        if not HANDLE_PATTERN.match(handle):
            return _usage(f"`{handle}` is not a valid GitHub handle.")
        return Command(kind=CommandKind.ASSIGN_USER, handle=handle, rotation=parts[4].strip())

    return _usage(f"Unknown `/oncall` sub-command `{tokens[1]}`.")


def parse_command(body: Optional[str]) -> Optional[Command]:
    """
    Recognise at most one command in a comment body.

    Returns:
        The Command, or None when the body holds no command at all.
        Malformed `/oncall` invocations yield a USAGE command so the
        user gets a corrective reply.
    """
    if not body:
        return None

    lines = body.strip().splitlines()
    if not lines:
        return None
    line = lines[0].strip()

    tokens = line.split()
    if not tokens:
        return None

    keyword = tokens[0]
    if keyword in _SIMPLE_COMMANDS:
        return Command(kind=_SIMPLE_COMMANDS[keyword])
    if keyword == "/oncall":
        return _parse_oncall(line)
    return None
