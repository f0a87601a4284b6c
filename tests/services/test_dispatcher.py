"""End-to-end tests for the Dispatcher facade."""
import asyncio
import csv
import io

import pytest
import pytest_asyncio

from genbot.core.commands import Command, JobKind
from genbot.core import responses
from genbot.services.dispatcher import Dispatcher

from conftest import FakeBackend, FakeMessenger, make_backends, make_message


class Bot:
    """Dispatcher with a fake transport and fake backends."""

    def __init__(self, config, **backend_overrides):
        self.inbound = asyncio.Queue()
        self.messenger = FakeMessenger()
        self.backends = make_backends(**backend_overrides)
        self.dispatcher = Dispatcher(
            config=config,
            inbound=self.inbound,
            messenger=self.messenger,
            backends=self.backends,
            log_source=lambda: "log line\n",
        )
        self.sent = 0

    async def send(self, text="", command=None, username="alice", session_key=1, replies=1):
        """Push a message and wait for ``replies`` more replies."""
        self.sent += 1
        await self.inbound.put(make_message(
            text, command, session_key=session_key, message_id=self.sent, username=username,
        ))
        expected = len(self.messenger.texts) + len(self.messenger.files) + replies
        await self.messenger.wait_for(expected)

    def texts(self):
        return [text for _, _, text in self.messenger.texts]


@pytest_asyncio.fixture
async def bot(config):
    bot = Bot(config)
    await bot.dispatcher.start()
    yield bot
    await bot.dispatcher.stop()


class TestDispatcher:

    @pytest.mark.asyncio
    async def test_image_request_end_to_end(self, config):
        bot = Bot(config, dreambooth=FakeBackend(image=(b"fox-png", "fox.png")))
        await bot.dispatcher.start()

        await bot.send(command="start")
        await bot.send(command="dreamBooth")
        await bot.send("a red fox", replies=2)

        assert bot.texts() == [
            responses.SESSION_CREATED,
            responses.MODE_DESCRIPTIONS[Command.DREAMBOOTH],
            responses.REQUEST_QUEUED,
        ]
        message_id, session_key, body, filename = bot.messenger.files[0]
        assert (message_id, session_key, body, filename) == (3, 1, b"fox-png", "fox.png")
        assert bot.backends[JobKind.DREAMBOOTH].prompts == ["a red fox"]
        assert bot.dispatcher.registry.list_job_ids(1, JobKind.DREAMBOOTH) == []

        await bot.dispatcher.stop()

        rows = list(csv.reader(io.StringIO(open(config.stats.filepath, encoding="utf-8").read())))
        assert [r[1:] for r in rows] == [["alice", "dreamBooth", "", "a red fox"]]

    @pytest.mark.asyncio
    async def test_cancel_job(self, config):
        backend = FakeBackend(gate=asyncio.Event())
        bot = Bot(config, chatgpt=backend)
        await bot.dispatcher.start()

        await bot.send(command="start")
        await bot.send(command="chatGPT")
        await bot.send("tell me a story")
        await asyncio.wait_for(backend.started.wait(), 1)
        [job_id] = bot.dispatcher.registry.list_job_ids(1, JobKind.CHATGPT)

        await bot.send(command="cancelJob")
        await bot.send(str(job_id), replies=3)

        texts = bot.texts()
        assert responses.job_canceled(JobKind.CHATGPT, job_id) in texts
        assert responses.JOB_CANCELED in texts
        assert backend.cancelled
        assert bot.dispatcher.registry.list_job_ids(1, JobKind.CHATGPT) == []

        await bot.dispatcher.stop()

    @pytest.mark.asyncio
    async def test_cancel_job_bad_input(self, bot):
        await bot.send(command="start")
        await bot.send(command="cancelJob")

        await bot.send("soon", replies=2)
        assert bot.texts()[-1] == responses.INVALID_JOB_ID

        await bot.send("654321", replies=2)
        assert bot.texts()[-1] == responses.job_not_found(654321)

    @pytest.mark.asyncio
    async def test_job_limit_while_running(self, config):
        backend = FakeBackend(gate=asyncio.Event())
        bot = Bot(config, chatgpt=backend)
        await bot.dispatcher.start()

        await bot.send(command="start")
        await bot.send(command="chatGPT")
        await bot.send("first")
        await asyncio.wait_for(backend.started.wait(), 1)

        await bot.send("second")
        assert bot.texts()[-1] == responses.JOB_LIMIT

        backend.gate.set()
        await bot.messenger.wait_for(len(bot.messenger.texts) + 1)
        assert bot.texts()[-1] == "generated text"

        await bot.dispatcher.stop()

    @pytest.mark.asyncio
    async def test_ban_and_unban(self, bot):
        await bot.send(command="start", username="root")
        await bot.send(command="ban", username="root")
        await bot.send("mallory", username="root", replies=2)
        assert bot.texts()[-1] == responses.banned("mallory")

        await bot.send(command="start", username="mallory", session_key=2)
        assert bot.texts()[-1] == responses.ACCESS_DENIED

        await bot.send(command="blacklist", username="root")
        assert "mallory" in bot.texts()[-1]

        await bot.send(command="unban", username="root")
        await bot.send("mallory", username="root", replies=2)
        assert bot.texts()[-1] == responses.unbanned("mallory")

        await bot.send(command="start", username="mallory", session_key=2)
        assert bot.texts()[-1] == responses.SESSION_CREATED

    @pytest.mark.asyncio
    async def test_admin_logs(self, bot):
        await bot.send(command="logs", username="root")

        assert bot.texts()[-1] == "log line\n"

    @pytest.mark.asyncio
    async def test_stop_cancels_running_jobs_and_closes_backends(self, config):
        backend = FakeBackend(gate=asyncio.Event())
        bot = Bot(config, chatgpt=backend)
        await bot.dispatcher.start()

        await bot.send(command="start")
        await bot.send(command="chatGPT")
        await bot.send("hello")
        await asyncio.wait_for(backend.started.wait(), 1)

        await bot.dispatcher.stop()

        assert backend.cancelled
        assert not bot.dispatcher.is_running
        assert len(bot.dispatcher.registry) == 0
        assert all(b.closed for b in bot.backends.values())

    @pytest.mark.asyncio
    async def test_status(self, bot):
        await bot.send(command="start")

        status = bot.dispatcher.get_status()

        assert status["sessions"] == 1
        assert status["capacity"] == 10
        assert status["workers"]["total"] == 2
        assert not bot.dispatcher.is_overloaded()
