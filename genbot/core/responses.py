"""User-facing reply texts."""
from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional

from .commands import Command, JobKind
from .exceptions import BackendUnavailableError


@dataclass(frozen=True)
class Reply:
    """A reply to deliver through the messenger: text or a file."""

    text: str = ""
    body: Optional[bytes] = None
    filename: str = ""

    @property
    def is_file(self) -> bool:
        return self.body is not None

    @classmethod
    def file(cls, body: bytes, filename: str) -> "Reply":
        return cls(body=body, filename=filename)


SESSION_ALREADY_ACTIVE = """⚠ Session with the bot is already active ⚠
🔧 /help - list of commands"""

SESSION_CREATED = """🎉 Session is active, welcome! 🎉
🔧 /help - list of commands"""

SESSION_REMOVED = "😥 Session with the bot has ended. Come back soon! 😥"

SESSION_NOT_ACTIVE = """❌ Session with the bot is not active ❌
✅ /start - start a session with the bot
🔧 /help - list of commands"""

UNSUPPORTED_COMMAND = """❌ Command is not supported ❌
To see the list of commands, send /help"""

ACCESS_DENIED = "⛔ Access denied ⛔"

NO_GENERATION_MODE = """❌ No AI selected for generation ❌
🔧 /help - list of commands"""

REQUEST_QUEUED = "✅ Request added to the queue ✅"

OVERLOADED = """❌ The service is overloaded with requests ❌
Please try again later"""

JOB_LIMIT = """❌ Request limit exceeded ❌
Please wait for your previous requests to finish and try again"""

JOB_CANCELED = "✅ Request was canceled ✅"

TRY_AGAIN = """❌ Something went wrong while processing the request ❌
Please try again"""

INVALID_JOB_ID = "❌ Job number must be a number ❌"

INPUT_JOB_ID = """📛 Enter the job number 📛
📋 /listJobs - list of running jobs"""

INPUT_USERNAME = "👤 Enter the username 👤"

EMPTY_STATS = "📊 No statistics collected yet 📊"

EMPTY_LOGS = "📜 Log is empty 📜"

EMPTY_BLACKLIST = "📃 Blacklist is empty 📃"

MODE_DESCRIPTIONS: Mapping[Command, str] = {
    Command.CHATGPT: """📖 Text generation with ChatGPT 📖
Describe your request in as much detail as possible to get the most satisfying answer""",
    Command.OPENAI_TEXT: """📖 Text generation with OpenAI 📖
Describe your request in as much detail as possible to get the most satisfying answer""",
    Command.OPENAI_IMAGE: """🌄 Image generation with OpenAI 🌄
Describe your request in as much detail as possible to get the most satisfying image""",
    Command.DREAMBOOTH: """🌅 Image generation with DreamBooth selected 🌅
⚠ For best results read the docs https://stablediffusionapi.com/docs/community-models-api-v4/dreamboothtext2img#body-attributes ⚠
📄 /dreamBoothExample - example DreamBooth prompt""",
    Command.FUSIONBRAIN: """🌅 Image generation with FusionBrain selected 🌅
Lines: prompt, negative prompt, width, height, style
📄 /fusionBrainExample - example FusionBrain prompt""",
    Command.CANCEL_JOB: INPUT_JOB_ID,
    Command.BAN: INPUT_USERNAME,
    Command.UNBAN: INPUT_USERNAME,
}

DREAMBOOTH_EXAMPLE = """prompt: Iron Man, (Arnold Tsang, Toru Nakayama), Masterpiece, Studio Quality, 6k, glowing, axe, mecha, science_fiction, solo, weapon, jungle, green_background, nature, outdoors, tree, mask, dynamic lighting, detailed shading, digital texture painting
negative_prompt: un-detailed skin, semi-realistic, cgi, 3d, render, sketch, cartoon, drawing, ugly eyes, (out of frame:1.3), worst quality, low quality, jpeg artifacts
width: 512
height: 512
model_id: midjourney"""

FUSIONBRAIN_EXAMPLE = """Red fox in a snowy forest at dawn, highly detailed
blurry, low quality
1024
1024
UHD"""

HELP_LINES: Mapping[Command, str] = {
    Command.START: "✅ /start - start a session with the bot",
    Command.STOP: "⛔ /stop - end the session with the bot",
    Command.CHATGPT: "📖 /chatGPT - text generation with ChatGPT",
    Command.OPENAI_TEXT: "📖 /openAIText - text generation with the OpenAI API",
    Command.OPENAI_IMAGE: "🌄 /openAIImage - 1024x1024 image generation with the OpenAI API",
    Command.DREAMBOOTH: "🌅 /dreamBooth - advanced image generation with the DreamBooth API",
    Command.DREAMBOOTH_EXAMPLE: "📄 /dreamBoothExample - example DreamBooth prompt",
    Command.FUSIONBRAIN: "🌅 /fusionBrain - image generation with the FusionBrain API",
    Command.FUSIONBRAIN_EXAMPLE: "📄 /fusionBrainExample - example FusionBrain prompt",
    Command.CANCEL_JOB: "📛 /cancelJob - cancel a running job by its number",
    Command.LIST_JOBS: "📋 /listJobs - list of running jobs",
    Command.STATS: "📊 /stats - request statistics as CSV",
    Command.LOGS: "📜 /logs - latest log lines",
    Command.BAN: "🚫 /ban - block a user",
    Command.UNBAN: "♻ /unban - unblock a user",
    Command.BLACKLIST: "📃 /blacklist - list of blocked users",
}


def help_text(commands: Iterable[Command]) -> str:
    """Help for the commands the caller is allowed to use."""
    lines = ["🔧 Available commands 🔧"]
    lines.extend(HELP_LINES[c] for c in commands if c in HELP_LINES)
    return "\n".join(lines)


def backend_error(kind: JobKind, error: Optional[BaseException] = None) -> str:
    """Generic failure reply for a backend."""
    if isinstance(error, BackendUnavailableError):
        return (
            f"❌ {kind.label} failed to generate a response ❌\n"
            f"The {kind.label} service is unavailable right now, please try again later"
        )
    return f"❌ {kind.label} failed to generate a response ❌\nPlease try again"


def job_canceled(kind: JobKind, job_id: int) -> str:
    return f"{kind.label} job #{job_id} canceled"


def job_not_found(job_id: int) -> str:
    return f"Job #{job_id} not found"


def list_jobs(jobs: Mapping[JobKind, List[int]]) -> str:
    lines: List[str] = []
    for kind, job_ids in jobs.items():
        lines.append(f"{kind.label} jobs:")
        lines.extend(str(job_id) for job_id in job_ids)
    return "\n".join(lines)


def banned(username: str) -> str:
    return f"🚫 User {username} is blocked"


def already_banned(username: str) -> str:
    return f"⚠ User {username} is already blocked ⚠"


def unbanned(username: str) -> str:
    return f"♻ User {username} is unblocked"


def not_banned(username: str) -> str:
    return f"⚠ User {username} is not blocked ⚠"


def blacklist_failed(username: str) -> str:
    return f"❌ Failed to update the blacklist for {username} ❌"


def blacklist(usernames: Iterable[str]) -> str:
    names = sorted(usernames)
    if not names:
        return EMPTY_BLACKLIST
    return "📃 Blocked users:\n" + "\n".join(names)
