import asyncio

import pytest

from nido.analysis import EmbeddingGenerator
from nido.config import Settings


@pytest.fixture
def generator():
    return EmbeddingGenerator(api_key="test-key")


def test_query_embedding_retries_within_channel_timeout(generator):
    calls = []

    async def flaky_embed(text):
        calls.append(text)
        if len(calls) < 3:
            raise ConnectionError("gemini caído")
        return [0.1, 0.2]

    generator._embed = flaky_embed
    timeout = Settings(_env_file=None).channel_timeout_seconds

    vector = asyncio.run(asyncio.wait_for(generator.generate_query_embedding("luminoso"), timeout))

    assert vector == [0.1, 0.2]
    assert calls == ["luminoso"] * 3


def test_query_embedding_raises_original_error_after_last_attempt(generator):
    async def broken_embed(text):
        raise ConnectionError("gemini caído")

    generator._embed = broken_embed

    with pytest.raises(ConnectionError):
        asyncio.run(generator.generate_query_embedding("luminoso"))
