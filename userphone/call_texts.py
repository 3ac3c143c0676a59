"""User-facing text for call results and system notifications."""

from typing import Any, Dict, List, Optional


def queued_text(position: int, queue_length: int) -> str:
    return (
        f"🔍 **Looking for a match...** You're #{position} in queue "
        f"({queue_length} total)."
    )


def skip_queued_text() -> str:
    return "⏭️ Call ended, looking for a new match..."


def connected_text() -> str:
    return "📞 **Call connected!** Say hello to the other server."


def skip_connected_text() -> str:
    return "⏭️ **Call skipped and new match found!**"


def left_queue_text() -> str:
    return "✅ **Removed from queue!** You're no longer waiting for a call match."


def format_duration(duration_ms: float) -> str:
    total_seconds = int(duration_ms // 1000)
    return f"{total_seconds // 60}m {total_seconds % 60}s"


def ended_text(duration_ms: float) -> str:
    return (
        f"📞 **Call ended!** Duration: {format_duration(duration_ms)}. "
        "Thanks for using InterChat!"
    )


def already_in_call_text() -> str:
    return "❌ This channel is already in an active call! Use `/hangup` to end it first."


def already_in_queue_text() -> str:
    return "❌ This channel is already in the call queue! Please wait for a match."


def webhook_failed_text() -> str:
    return (
        "❌ Failed to create webhook for this channel. "
        "Please check bot permissions and try `/call` again."
    )


def not_in_call_text() -> str:
    return "❌ This channel isn't in an active call. Use `/call` to start one!"


def skip_rematch_failed_text(reason: str) -> str:
    return f"❌ Call ended but failed to start new match: {reason}"


def internal_error_text(action: str) -> str:
    return f"❌ An error occurred while {action}. Please try again."


def call_start_notice(initiator_id: Optional[str]) -> str:
    mention = f"<@{initiator_id}> " if initiator_id else ""
    return (
        f"{mention}📞 **Call Connected!**\n"
        "> - You can now chat with the other server\n"
        "> - Use `/hangup` to end the call\n"
        "> - Keep conversations friendly and follow our guidelines."
    )


def call_end_notice(duration_ms: float, message_count: int) -> str:
    return (
        "**Call ended!** How was your experience?\n"
        f"⏱️ {format_duration(duration_ms)} • 💬 {message_count} messages"
    )


def participant_joined_notice(user_id: str) -> str:
    return f"👋 <@{user_id}> joined the call on the other side."


def participant_left_notice(user_id: str) -> str:
    return f"👋 <@{user_id}> left the call on the other side."


def _button(custom_id: str, label: str, style: int) -> Dict[str, Any]:
    return {"type": 2, "custom_id": custom_id, "label": label, "style": style}


def call_end_components(call_id: str) -> List[Dict[str, Any]]:
    """Rating and report buttons attached to the end-of-call notice."""
    return [
        {
            "type": 1,
            "components": [
                _button(f"rate_call:like:{call_id}", "👍 Like", 3),
                _button(f"rate_call:dislike:{call_id}", "👎 Dislike", 4),
            ],
        },
        {
            "type": 1,
            "components": [_button(f"report_call:{call_id}", "🚩 Report", 2)],
        },
    ]
