import pytest

from otto.oncall.domain import CommandKind, USAGE_TEXT, parse_command


@pytest.mark.parametrize(
    "body,kind",
    [
        ("/ack", CommandKind.ACK),
        ("/escalate", CommandKind.ESCALATE),
        ("/resolve", CommandKind.RESOLVE),
        ("  /ack  \nthanks, looking now", CommandKind.ACK),
    ],
)
def test_incident_commands(body, kind):
    command = parse_command(body)

    assert command is not None
    assert command.kind is kind
    assert command.is_incident_command


@pytest.mark.parametrize(
    "body",
    [None, "", "   ", "looks good to me", "/acknowledge", "/ACK", "please /ack", "thanks\n/ack"],
)
def test_non_commands_are_ignored(body):
    assert parse_command(body) is None


def test_add_user_keeps_display_name():
    command = parse_command("/oncall add user alice Alice  Liddell")

    assert command.kind is CommandKind.ADD_USER
    assert command.handle == "alice"
    assert command.name == "Alice  Liddell"
    assert not command.is_incident_command


def test_add_rotation():
    command = parse_command("/oncall add rotation Primary Backend")

    assert command.kind is CommandKind.ADD_ROTATION
    assert command.name == "Primary Backend"


def test_assign_user():
    command = parse_command("/oncall assign bob-2 to Primary Backend")

    assert command.kind is CommandKind.ASSIGN_USER
    assert command.handle == "bob-2"
    assert command.rotation == "Primary Backend"


def test_rotation_named_like_keyword_is_not_misread():
    command = parse_command("/oncall add rotation user")

    assert command.kind is CommandKind.ADD_ROTATION
    assert command.name == "user"


@pytest.mark.parametrize(
    "body",
    [
        "/oncall",
        "/oncall add",
        "/oncall add user alice",
        "/oncall add rotation",
        "/oncall add team x",
        "/oncall assign alice Primary",
        "/oncall assign alice to",
        "/oncall add user al!ce Alice",
        "/oncall remove alice",
    ],
)
def test_malformed_oncall_yields_usage(body):
    command = parse_command(body)

    assert command.kind is CommandKind.USAGE
    assert USAGE_TEXT in command.message
