"""
Tests for the LiteLLM chat helpers.

Run with: python -m pytest tests/test_llm.py -v
"""

import pytest

from conftest import run
from tottales.common import ChatResult, ImageInput, LiteLLMTextClient, call_chat_completion
from tottales.common import llm


class RecordingCompletion:
    def __init__(self, text="ok"):
        self.text = text
        self.calls = []

    async def __call__(self, **kwargs):
        self.calls.append(kwargs)
        return ChatResult(text=self.text, raw=None)


class TestLiteLLMTextClient:
    def test_generate_text_uses_text_model(self):
        completion = RecordingCompletion("Once upon a time")
        client = LiteLLMTextClient(
            text_model="gemini/gemini-2.0-flash-lite", api_key="key", completion_fn=completion
        )

        assert run(client.generate_text("Write a story")) == "Once upon a time"
        call = completion.calls[0]
        assert call["model"] == "gemini/gemini-2.0-flash-lite"
        assert call["messages"] == [{"role": "user", "content": "Write a story"}]
        assert call["api_key"] == "key"

    def test_generate_with_images_sends_data_urls(self):
        completion = RecordingCompletion()
        client = LiteLLMTextClient(
            text_model="text-model", vision_model="vision-model", completion_fn=completion
        )

        run(client.generate_with_images("Describe", [ImageInput("AAAA", "image/png")]))

        call = completion.calls[0]
        assert call["model"] == "vision-model"
        content = call["messages"][0]["content"]
        assert content[0] == {"type": "text", "text": "Describe"}
        assert content[1] == {
            "type": "image_url",
            "image_url": {"url": "data:image/png;base64,AAAA"},
        }

    def test_models_fall_back_to_environment(self, monkeypatch):
        monkeypatch.delenv("TOTTALES_TEXT_MODEL", raising=False)
        monkeypatch.delenv("TOTTALES_VISION_MODEL", raising=False)
        monkeypatch.setenv("LITELLM_MODEL", "openai/gpt-4o-mini")

        client = LiteLLMTextClient(completion_fn=RecordingCompletion())

        assert client.text_model == "openai/gpt-4o-mini"
        assert client.vision_model == "openai/gpt-4o-mini"


class TestCallChatCompletion:
    def test_extracts_message_text(self, monkeypatch):
        captured = {}

        async def fake_acompletion(**kwargs):
            captured.update(kwargs)
            return {"choices": [{"message": {"content": "  Hello there  "}}]}

        monkeypatch.setattr(llm, "acompletion", fake_acompletion)

        result = run(
            call_chat_completion(
                model="gemini/gemini-2.0-flash-lite",
                messages=[{"role": "user", "content": "Hi"}],
                temperature=0.3,
            )
        )

        assert result.text == "Hello there"
        assert captured["temperature"] == 0.3
        assert "max_tokens" not in captured

    def test_unexpected_response_shape(self, monkeypatch):
        async def fake_acompletion(**kwargs):
            return {"choices": []}

        monkeypatch.setattr(llm, "acompletion", fake_acompletion)

        with pytest.raises(RuntimeError, match="Unexpected LiteLLM response format"):
            run(call_chat_completion(model="m", messages=[]))
