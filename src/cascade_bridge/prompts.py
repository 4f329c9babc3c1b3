"""Text the bridge injects into backend turns and chat replies."""

from __future__ import annotations

from cascade_bridge.directives import REPLY_CLOSE, REPLY_OPEN, REVIEW_OPEN, processing_placeholder
from cascade_bridge.models import ConversationConfig

BRIDGE_INSTRUCTIONS = (
    "\n\n[Bridge instruction: You are talking to the user through Discord. Keep printing your "
    "reasoning and tool announcements in the IDE as usual, but wrap every message meant for the "
    f"Discord user (final reports, status summaries, result URLs) in {REPLY_OPEN} and {REPLY_CLOSE} "
    "tags. Text outside those tags is hidden from Discord, so the whole reply must be inside them.]"
    "\n[Bridge instruction: To ask the user to approve a document such as an implementation plan "
    f'(.md file), output {REVIEW_OPEN} file="ABSOLUTE_PATH"> with the absolute path of the file. '
    "The user will then see Yes/No buttons.]"
)

GITHUB_DEFAULT = (
    "Finally, create a GitHub repository and push to it (for example with `gh repo create`), "
    "then output the URL or the result."
)

GITHUB_WITH_CREDENTIALS = (
    "Finally, authenticate with the given GitHub username ({username}) and token ({token}), "
    "create a GitHub repository and push to it (for example with `gh repo create`), then output "
    "the URL or the result."
)

AUTO_MODE_PREFIX = "\nWhile handling this request, run terminal commands and apply file changes directly. "

APPROVED_TURN = (
    f"{REPLY_OPEN}The user approved the plan (Yes). Start implementing it as written.{REPLY_CLOSE}"
    "\n\n[Bridge instruction: The user selected Yes. Enter the execution phase and follow the plan.]"
)

APPROVED_PANEL = "✅ Approved. Continuing with the implementation."
REJECTED_PANEL = "❌ Changes requested."
REJECTED_FOLLOW_UP = (
    "Reply in this thread with your corrections or additional requests. "
    "The bot keeps the context and will update the plan."
)
REVIEW_PANEL = "📄 **A plan or document was created.** Review it and choose Yes to approve or No to request changes."
REVIEW_YES_LABEL = "Yes (start implementation)"
REVIEW_NO_LABEL = "No (request changes)"

NOT_AUTHORIZED = "You are not authorized to use this."
ALREADY_DECIDED = "This review was already answered."

THREAD_STARTING = "🧵 Starting isolated task environment in thread..."
THREAD_FALLBACK_NAME = "Task: Processing..."
THREAD_NAME_CHARS = 30


def thinking(config: ConversationConfig) -> str:
    return f"🤔 Thinking... ({config.status_label})"


def processing(config: ConversationConfig) -> str:
    return processing_placeholder(config.status_label)


def turn_failed(exc: BaseException) -> str:
    return f"❌ Error communicating with IDE: {exc}"


def thread_name(text: str) -> str:
    name = "Task: " + text[:THREAD_NAME_CHARS].replace("\n", " ")
    if len(name) < 7:
        return THREAD_FALLBACK_NAME
    return name


def github_instructions(username: str, token: str) -> str:
    if username and token:
        return GITHUB_WITH_CREDENTIALS.format(username=username, token=token)
    return GITHUB_DEFAULT


def compose_turn_text(
    text: str,
    config: ConversationConfig,
    *,
    github_username: str = "",
    github_token: str = "",
) -> str:
    """User text plus the bridge instructions for this conversation's mode."""
    composed = text.strip() + BRIDGE_INSTRUCTIONS
    if config.auto_approve:
        composed += AUTO_MODE_PREFIX + github_instructions(github_username, github_token)
    return composed
