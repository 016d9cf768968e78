"""Shared fixtures for memstream tests."""

import pytest

from memstream.core.chunking import DEFAULT_POSITION, parse_command
from memstream.core.model import ProtocolFailureError
from memstream.io.local import ImageSession, RangeValidator

BASE = DEFAULT_POSITION
IMAGE = bytes(range(256)) * 40  # 10240 bytes mapped at BASE


class FlakySession(ImageSession):
    """ImageSession that refuses one command, or accepts it but loses the payload."""

    def __init__(self, image, base=0, *, refuse=None, drop_payload=None, **kwargs):
        super().__init__(image, base, **kwargs)
        self.refuse = refuse              # index of the command to refuse
        self.drop_payload = drop_payload  # index of the command whose payload vanishes

    def send_command_strict(self, command):
        index = len(self.commands)
        if index == self.refuse:
            self.commands.append(command)
            raise ProtocolFailureError("405- access denied")
        ack = super().send_command_strict(command)
        if index == self.drop_payload:
            self.transport.clear()
        return ack


def command_args(session, name):
    """Parsed parameters of every `name` command the session received."""
    out = []
    for command in session.commands:
        cmd, args = parse_command(command)
        if cmd == name:
            out.append(args)
    return out


@pytest.fixture
def session():
    return ImageSession(IMAGE, BASE)


@pytest.fixture
def validator(session):
    return RangeValidator.for_session(session)
