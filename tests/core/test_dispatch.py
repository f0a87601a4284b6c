"""Tests for the command dispatch table and command parsing."""
import pytest

from genbot.core.commands import Command, JobKind, parse_command
from genbot.core.dispatch import (
    CONTROL_COMMANDS,
    GENERATION_COMMANDS,
    SESSION_COMMANDS,
    ControlTask,
    DispatchTable,
    GenerationRoute,
    OutputMode,
    build_generation_routes,
)
from genbot.core.responses import Reply

from conftest import make_backends


async def _noop(session_key, text):
    return Reply("ok")


def make_controls():
    return {command: ControlTask(command, _noop) for command in CONTROL_COMMANDS}


def make_routes():
    return build_generation_routes(
        make_backends(),
        timeouts={kind: 10.0 for kind in JobKind},
        max_jobs={kind: 1 for kind in JobKind},
    )


class TestCategories:

    def test_every_command_has_exactly_one_category(self):
        for command in Command:
            owners = [
                command in GENERATION_COMMANDS,
                command in CONTROL_COMMANDS,
                command in SESSION_COMMANDS,
            ]
            assert sum(owners) == 1, command

    def test_generation_kinds_and_modes(self):
        assert GENERATION_COMMANDS[Command.CHATGPT] == (JobKind.CHATGPT, OutputMode.TEXT)
        assert GENERATION_COMMANDS[Command.OPENAI_IMAGE] == (JobKind.OPENAI, OutputMode.IMAGE)
        assert GENERATION_COMMANDS[Command.DREAMBOOTH] == (JobKind.DREAMBOOTH, OutputMode.IMAGE)


class TestDispatchTable:

    def test_resolve(self):
        table = DispatchTable(make_routes(), make_controls())

        route = table.resolve(Command.DREAMBOOTH)
        assert isinstance(route, GenerationRoute)
        assert route.kind is JobKind.DREAMBOOTH
        assert route.mode is OutputMode.IMAGE
        assert isinstance(table.resolve(Command.CANCEL_JOB), ControlTask)
        assert table.resolve(Command.START) is None
        assert table.resolve(Command.HELP) is None

    def test_generation_route_ignores_control_tasks(self):
        table = DispatchTable(make_routes(), make_controls())

        assert table.generation_route(Command.CHATGPT) is not None
        assert table.generation_route(Command.BAN) is None

    def test_missing_generation_route_fails(self):
        routes = make_routes()
        del routes[Command.FUSIONBRAIN]

        with pytest.raises(ValueError, match="fusionBrain"):
            DispatchTable(routes, make_controls())

    def test_missing_control_task_fails(self):
        controls = make_controls()
        del controls[Command.UNBAN]

        with pytest.raises(ValueError, match="unban"):
            DispatchTable(make_routes(), controls)

    def test_route_bound_to_other_command_fails(self):
        routes = make_routes()
        routes[Command.OPENAI_TEXT] = routes[Command.CHATGPT]

        with pytest.raises(ValueError):
            DispatchTable(routes, make_controls())

    def test_build_routes_requires_every_backend(self):
        backends = make_backends()
        del backends[JobKind.OPENAI]

        with pytest.raises(ValueError):
            build_generation_routes(
                backends,
                timeouts={kind: 1.0 for kind in JobKind},
                max_jobs={kind: 1 for kind in JobKind},
            )

    def test_openai_commands_share_backend(self):
        routes = make_routes()

        assert routes[Command.OPENAI_TEXT].backend is routes[Command.OPENAI_IMAGE].backend


class TestParseCommand:

    @pytest.mark.parametrize("text,expected", [
        ("/start", Command.START),
        ("!dreamBooth", Command.DREAMBOOTH),
        ("  /cancelJob  ", Command.CANCEL_JOB),
        ("/help@genbot", Command.HELP),
    ])
    def test_known_commands(self, text, expected):
        command, name = parse_command(text)

        assert command is expected
        assert name == expected.value

    def test_unknown_command_keeps_name(self):
        assert parse_command("/fly") == (None, "fly")

    def test_free_text(self):
        assert parse_command("a red fox") == (None, None)
        assert parse_command("") == (None, None)
        assert parse_command("/") == (None, None)
