"""Tests for OpenAITextGenerator with a mocked OpenAI client."""

from unittest.mock import MagicMock

import httpx
import openai
import pytest

from feedback_analyzer.services.text_generator import GeneratorError, OpenAITextGenerator


def make_completion(content):
    choice = MagicMock()
    choice.message.content = content
    completion = MagicMock()
    completion.choices = [choice]
    return completion


@pytest.fixture
def mock_client():
    return MagicMock()


class TestGenerate:
    def test_returns_message_content(self, mock_client):
        mock_client.chat.completions.create.return_value = make_completion('{"summary": "ok"}')
        generator = OpenAITextGenerator(model="gpt-test", client=mock_client)

        assert generator.generate("prompt", 512) == '{"summary": "ok"}'

        kwargs = mock_client.chat.completions.create.call_args[1]
        assert kwargs["model"] == "gpt-test"
        assert kwargs["max_tokens"] == 512
        assert kwargs["messages"] == [{"role": "user", "content": "prompt"}]

    def test_none_content_becomes_empty_string(self, mock_client):
        mock_client.chat.completions.create.return_value = make_completion(None)
        generator = OpenAITextGenerator(client=mock_client)

        assert generator.generate("prompt", 10) == ""

    def test_no_choices_raises(self, mock_client):
        completion = MagicMock()
        completion.choices = []
        mock_client.chat.completions.create.return_value = completion
        generator = OpenAITextGenerator(client=mock_client)

        with pytest.raises(GeneratorError):
            generator.generate("prompt", 10)

    def test_openai_errors_wrapped(self, mock_client):
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        mock_client.chat.completions.create.side_effect = openai.APIConnectionError(request=request)
        generator = OpenAITextGenerator(client=mock_client)

        with pytest.raises(GeneratorError, match="APIConnectionError"):
            generator.generate("prompt", 10)

    def test_model_from_environment(self, monkeypatch):
        monkeypatch.setenv("FEEDBACK_GENERATOR_MODEL", "gpt-custom")

        assert OpenAITextGenerator().model == "gpt-custom"

    def test_client_created_lazily(self):
        generator = OpenAITextGenerator()

        assert generator._client is None
        assert generator.client is generator.client
