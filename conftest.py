import random

import pytest

from chronicle.catalog import Catalog, default_catalog
from chronicle.config import Settings
from chronicle.pipeline import Engine
from chronicle.storage import SaveStorage


class StubLLM:
    """Scripted narrator. Each call pops the next response.

    A response that is an Exception instance is raised instead of returned.
    Once the script is exhausted the last response repeats.
    """

    def __init__(self, *responses):
        self.responses = list(responses) or [""]
        self.calls: list[list[dict]] = []
        self.completions: list[list[dict]] = []
        self.summary = "摘要"

    def _next(self):
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]

    async def stream(self, messages, on_chunk):
        self.calls.append(messages)
        response = self._next()
        if isinstance(response, Exception):
            raise response
        for part in response.split("\n"):
            on_chunk(part)
        return response

    async def complete(self, messages):
        self.completions.append(messages)
        return self.summary


@pytest.fixture
def catalog() -> Catalog:
    return default_catalog()


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def storage(tmp_path) -> SaveStorage:
    return SaveStorage(tmp_path)


@pytest.fixture
def llm() -> StubLLM:
    return StubLLM("【卡利阿斯】“早安。”\n1. 问候他\n2. 继续干活")


@pytest.fixture
def engine(catalog, storage, llm, settings) -> Engine:
    return Engine(
        catalog, storage,
        stream=llm.stream, completion=llm.complete,
        settings=settings, rng=random.Random(0),
    )
