"""Tests for request sanitization."""

import pytest

from llm_relay.core.sanitizer import RequestSanitizer
from llm_relay.models import ImagePart
from tests.conftest import make_request


@pytest.fixture
def sanitizer() -> RequestSanitizer:
    return RequestSanitizer()


class TestClean:
    """String-level cleaning."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("plain text", "plain text"),
            ("  padded  ", "padded"),
            ("<b>bold</b> move", "bold move"),
            ("<script>alert(1)</script>hello", "hello"),
            ("<style>body{}</style>styled", "styled"),
            ("click javascript:alert(1)", "click alert(1)"),
            ("VBScript : run", "run"),
            ("<img src=x onerror=alert(1)>after", "after"),
            ("<scr<b></b>ipt>alert(1)</script>", "alert(1)"),
            ("a < b and c > d", "a < b and c > d"),
            ("", ""),
        ],
    )
    def test_clean(self, sanitizer: RequestSanitizer, raw: str, expected: str) -> None:
        assert sanitizer.clean(raw) == expected

    @pytest.mark.parametrize(
        "raw",
        [
            "<<script>script>alert(1)<</script>/script>",
            "java<b>script:</b>x",
            "<p>nested <i>tags</i></p>",
        ],
    )
    def test_idempotent(self, sanitizer: RequestSanitizer, raw: str) -> None:
        once = sanitizer.clean(raw)
        assert sanitizer.clean(once) == once


class TestSanitize:
    """Request-level sanitization."""

    def test_message_text_cleaned(self, sanitizer: RequestSanitizer) -> None:
        request = make_request(messages=[{"role": "user", "content": "<b>Hi</b> there"}])

        sanitized = sanitizer.sanitize(request)

        assert sanitized.messages[0].content == "Hi there"
        assert request.messages[0].content == "<b>Hi</b> there"

    def test_text_parts_cleaned_images_untouched(self, sanitizer: RequestSanitizer) -> None:
        url = "https://img.example/a.png?x=<b>"
        request = make_request(messages=[{
            "role": "user",
            "content": [
                {"type": "text", "text": "<i>look</i>"},
                {"type": "image_url", "image_url": {"url": url, "detail": "low"}},
            ],
        }])

        text, image = sanitizer.sanitize(request).messages[0].content

        assert text.text == "look"
        assert isinstance(image, ImagePart)
        assert image.image_url.url == url
        assert image.image_url.detail == "low"

    def test_null_content_preserved(self, sanitizer: RequestSanitizer) -> None:
        request = make_request(messages=[
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": None, "function_call": {"name": "f", "arguments": "{}"}},
        ])

        sanitized = sanitizer.sanitize(request)

        assert sanitized.messages[1].content is None
        dumped = sanitized.model_dump(exclude_unset=True)
        assert dumped["messages"][1]["content"] is None

    def test_names_descriptions_and_user_cleaned(self, sanitizer: RequestSanitizer) -> None:
        request = make_request(
            messages=[{"role": "user", "name": "<b>alice</b>", "content": "hi"}],
            user="<script>x</script>user-1",
            functions=[{
                "name": "<i>lookup</i>",
                "description": "Find <b>things</b>",
                "parameters": {"type": "object"},
            }],
            function_call={"name": "<i>lookup</i>"},
        )

        sanitized = sanitizer.sanitize(request)

        assert sanitized.messages[0].name == "alice"
        assert sanitized.user == "user-1"
        assert sanitized.functions[0].name == "lookup"
        assert sanitized.functions[0].description == "Find things"
        assert sanitized.functions[0].parameters == {"type": "object"}
        assert sanitized.function_call.name == "lookup"

    def test_assistant_function_call_name_cleaned(self, sanitizer: RequestSanitizer) -> None:
        request = make_request(messages=[
            {"role": "user", "content": "weather?"},
            {
                "role": "assistant",
                "content": None,
                "function_call": {"name": "<b>get_weather</b>", "arguments": '{"city": "Oslo"}'},
            },
        ])

        sanitized = sanitizer.sanitize(request)

        call = sanitized.messages[1].function_call
        assert call.name == "get_weather"
        assert call.arguments == '{"city": "Oslo"}'
        assert request.messages[1].function_call.name == "<b>get_weather</b>"

    def test_tools_cleaned(self, sanitizer: RequestSanitizer) -> None:
        request = make_request(
            tools=[{"type": "function", "function": {"name": "<b>t</b>", "parameters": {}}}],
            tool_choice={"type": "function", "function": {"name": "<b>t</b>"}},
        )

        sanitized = sanitizer.sanitize(request)

        assert sanitized.tools[0].function.name == "t"
        assert sanitized.tool_choice.function.name == "t"

    def test_numeric_fields_untouched(self, sanitizer: RequestSanitizer) -> None:
        request = make_request(temperature=0.7, max_tokens=64, stop=["<b>"])

        sanitized = sanitizer.sanitize(request)

        assert sanitized.temperature == 0.7
        assert sanitized.max_tokens == 64
        assert sanitized.stop == ["<b>"]

    def test_request_idempotent(self, sanitizer: RequestSanitizer) -> None:
        request = make_request(
            messages=[{"role": "user", "content": "<scr<b></b>ipt>x</script> javascript:go"}],
            user="<b>u</b>",
        )

        once = sanitizer.sanitize(request)
        twice = sanitizer.sanitize(once)

        assert twice.model_dump() == once.model_dump()

    def test_unset_fields_stay_unset(self, sanitizer: RequestSanitizer) -> None:
        sanitized = sanitizer.sanitize(make_request())
        assert "user" not in sanitized.model_dump(exclude_unset=True)
