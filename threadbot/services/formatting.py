"""Telegram MarkdownV2 escaping and prompt message rendering."""

from datetime import date

from threadbot.config import SlotMessageConfig

ESCAPE_CHAR = "\\"

# Characters Telegram reserves in MarkdownV2 text
MARKDOWN_V2_RESERVED = "_*[]()~`>#+-=|{}.!"

# sendMessage rejects longer text; Telegram counts UTF-16 code units
TELEGRAM_MAX_MESSAGE_LENGTH = 4096

ELLIPSIS = "…"


def escape_markdown_v2(text: str) -> str:
    """
    Escape arbitrary text for a MarkdownV2 message.

    The escape character is handled before the reserved set so that escapes
    added for reserved characters are not escaped a second time. Applying the
    function twice is therefore not a no-op; escape each dynamic fragment
    exactly once before interpolating it into a template.
    """
    escaped = text.replace(ESCAPE_CHAR, ESCAPE_CHAR * 2)
    for char in MARKDOWN_V2_RESERVED:
        escaped = escaped.replace(char, ESCAPE_CHAR + char)
    return escaped


def telegram_length(text: str) -> int:
    return len(text.encode("utf-16-le")) // 2


def format_prompt_list(prompts: list[str]) -> str:
    """Render prompts as a numbered list ("1. first\\n2. second")."""
    return "\n".join(f"{i}. {prompt}" for i, prompt in enumerate(prompts, start=1))


def format_slot_date(slot_date: date) -> str:
    """Weekday plus ISO date, e.g. "Monday 2026-01-05"."""
    return f"{slot_date.strftime('%A')} {slot_date.isoformat()}"


def build_prompt_message(
    slot_message: SlotMessageConfig,
    slot_date: date,
    topic: str,
    body: str,
    reply_hint: str,
) -> str:
    """
    Build the MarkdownV2 text of a scheduled prompt.

    Every fragment is escaped independently; the template itself carries no
    formatting markers, so the whole message renders as plain text. A body
    too long for one Telegram message is cut and ends with an ellipsis.

    Args:
        slot_message: Greeting, emoji and label for the slot
        slot_date: Recipient-local date the prompt is for
        topic: Theme or page label of the content item
        body: Prompt text resolved from the content source
        reply_hint: Footer telling the recipient how replies are logged

    Returns:
        Message text ready for parse_mode=MarkdownV2
    """
    e = escape_markdown_v2
    heading = f"{format_slot_date(slot_date)} - {slot_message.label}"

    def render(text: str) -> str:
        return (
            f"{e(slot_message.greeting)}\n\n"
            f"{e(slot_message.emoji)} {e(heading)}\n"
            f"🎯 {e(topic)}\n\n"
            f"{e(text)}\n\n"
            f"💬 {e(reply_hint)}"
        )

    message = render(body)
    overflow = telegram_length(message) - TELEGRAM_MAX_MESSAGE_LENGTH
    if overflow > 0:
        # Each raw character escapes to at least one code unit
        message = render(body[: max(0, len(body) - overflow - 1)] + ELLIPSIS)
    return message
