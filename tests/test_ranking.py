"""Tests for the AI ranking request."""

from types import SimpleNamespace

from core import ranking
from core.models import ItemRecord


def _chunk(content):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


class FakeCompletions:
    def __init__(self, chunks=None, error=None):
        self.chunks = chunks or []
        self.error = error
        self.kwargs = None

    def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error:
            raise self.error
        return iter(self.chunks)


def _client(completions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


RECORDS = [ItemRecord(key="1", title="[sold] Mini PC", price="$90", url="u1")]


class TestGenerateRanking:
    def test_streams_and_joins_chunks(self):
        completions = FakeCompletions(
            [_chunk("# Ranking"), _chunk(None), SimpleNamespace(choices=[]), _chunk("\n1. Mini PC")]
        )
        seen = []
        text = ranking.generate_ranking(
            RECORDS, client=_client(completions), on_chunk=seen.append, model="test-model"
        )
        assert text == "# Ranking\n1. Mini PC"
        assert seen == ["# Ranking", "\n1. Mini PC"]
        assert completions.kwargs["model"] == "test-model"
        assert completions.kwargs["stream"] is True
        system, user = completions.kwargs["messages"]
        assert system["role"] == "system"
        assert user["content"].startswith(ranking.USER_PROMPT)
        assert '"itemId": "1"' in user["content"]

    def test_error_returns_none(self):
        completions = FakeCompletions(error=RuntimeError("quota"))
        assert ranking.generate_ranking(RECORDS, client=_client(completions)) is None

    def test_empty_response_returns_none(self):
        completions = FakeCompletions([_chunk("   ")])
        assert ranking.generate_ranking(RECORDS, client=_client(completions)) is None

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.setattr(ranking, "AI_API_KEY", "")
        assert ranking.generate_ranking(RECORDS) is None
