import random

import pytest

from hanziflow.config import settings
from hanziflow.models import VocabItem, VocabSet


class FakeHandle:
    def __init__(self, when, callback):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    """Manually driven replacement for the asyncio loop scheduler."""

    def __init__(self):
        self.now = 0.0
        self.handles = []

    def call_later(self, delay, callback):
        handle = FakeHandle(self.now + delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self):
        return [h for h in self.handles if not h.cancelled]

    def advance(self, seconds):
        target = self.now + seconds
        while True:
            due = [h for h in self.pending if h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self.now = handle.when
            handle.cancelled = True
            handle.callback()
        self.now = target


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def items():
    return [
        VocabItem(id="1", hanzi="你好", pinyin="nǐhǎo", meaning="hello"),
        VocabItem(id="2", hanzi="谢谢", pinyin="xièxie", meaning="thank you"),
        VocabItem(id="3", hanzi="再见", pinyin="zàijiàn", meaning="goodbye"),
        VocabItem(id="4", hanzi="朋友", pinyin="péngyou", meaning="friend"),
        VocabItem(id="5", hanzi="老师", pinyin="lǎoshī", meaning="teacher"),
        VocabItem(id="6", hanzi="学生", pinyin="xuésheng", meaning="student"),
    ]


@pytest.fixture
def vocab_set(items):
    return VocabSet(id="greetings", title="Greetings", items=items)


@pytest.fixture
def tmp_settings(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "DB_DIR", str(tmp_path / "db"))
    monkeypatch.setattr(settings, "LOG_DIR", str(tmp_path / "log"))
    monkeypatch.setattr(settings, "VOCAB_DIR", str(tmp_path / "vocabulary"))
    monkeypatch.setattr(settings, "LOG_TO_DB", False)
    return settings
