import asyncio
from types import SimpleNamespace

import pytest

from trip_sync.collaborators import ExtractionError
from trip_sync.config import MAX_BODY_CHARS
from trip_sync.extract.llm_extractor import LLMSegmentExtractor, _parse_response
from trip_sync.models import EmailMessage


class FakeCompletions:
    def __init__(self, content):
        self.content = content
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _client(content):
    completions = FakeCompletions(content)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


def test_parse_plain_array():
    assert _parse_response('[{"type": "HOTEL"}]') == [{"type": "HOTEL"}]
    assert _parse_response("[]") == []


def test_parse_fenced_array():
    text = '```json\n[{"type": "FLIGHT"}, {"type": "HOTEL"}]\n```'
    assert _parse_response(text) == [{"type": "FLIGHT"}, {"type": "HOTEL"}]


def test_parse_wrapped_or_single_object():
    assert _parse_response('{"segments": [{"type": "CAR"}]}') == [{"type": "CAR"}]
    assert _parse_response('{"type": "TRAIN"}') == [{"type": "TRAIN"}]
    assert _parse_response('{"note": "nothing here"}') == []


def test_parse_drops_non_objects():
    assert _parse_response('[{"type": "CAR"}, "junk", 3]') == [{"type": "CAR"}]


@pytest.mark.parametrize("text", ["Sorry, I can't help", "", '"just a string"'])
def test_unusable_answer_raises(text):
    with pytest.raises(ExtractionError):
        _parse_response(text)


def test_extract_sends_truncated_email():
    client, completions = _client('[{"type": "HOTEL", "startDate": "2024-06-01"}]')
    extractor = LLMSegmentExtractor(client=client, model="test-model")
    message = EmailMessage(id="e1", body="x" * (MAX_BODY_CHARS + 500), subject="Your reservation", sender="desk@lutetia.fr")

    records = asyncio.run(extractor.extract(message))

    assert records == [{"type": "HOTEL", "startDate": "2024-06-01"}]
    call = completions.calls[0]
    assert call["model"] == "test-model"
    assert call["temperature"] == 0.0
    user_content = call["messages"][1]["content"]
    assert "Subject: Your reservation" in user_content
    assert user_content.count("x") == MAX_BODY_CHARS


def test_extract_raises_on_garbage():
    client, _ = _client("no json here")
    with pytest.raises(ExtractionError):
        asyncio.run(LLMSegmentExtractor(client=client).extract(EmailMessage(id="e1", body="hi")))
