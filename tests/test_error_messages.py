import pytest

from helpers.error_messages import format_user_error, format_user_success


class TestFormatUserError:
    @pytest.mark.parametrize(
        "code",
        [
            "CONFLICT",
            "UNAUTHORIZED",
            "NOT_OWNER",
            "NOT_MANAGED",
            "NOT_IN_VOICE",
            "CHANNEL_GONE",
            "REMOTE_ERROR",
            "RATE_LIMITED",
            "BOT_FORBIDDEN",
            "CREATION_FAILED",
        ],
    )
    def test_known_codes_are_short_and_titled(self, code):
        message = format_user_error(code)

        assert "**" in message
        assert len(message) <= 120
        assert message != format_user_error("UNKNOWN")

    def test_invalid_name_includes_limit(self):
        assert "1-100" in format_user_error("INVALID_NAME")
        assert "1-32" in format_user_error("INVALID_NAME", max_length=32)

    def test_unknown_code_falls_back(self):
        assert format_user_error("NO_SUCH_CODE") == format_user_error("UNKNOWN")
        assert format_user_error(None) == format_user_error("UNKNOWN")


class TestFormatUserSuccess:
    def test_lobby_created(self):
        message = format_user_success("LOBBY_CREATED", channel_mention="<#5>")

        assert message.startswith("✅")
        assert "<#5>" in message

    def test_renamed(self):
        assert "**Chill Zone**" in format_user_success("RENAMED", name="Chill Zone")

    def test_missing_placeholder_uses_generic_message(self):
        assert format_user_success("LOBBY_REMOVED") == "✅ **Success**\nOperation completed."
