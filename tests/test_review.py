"""
审核会话与控制台审核测试
"""

import asyncio

import click
import pytest

from conftest import HASH_A, make_label

from torrent_desk.metadata import MetadataPendingRegistry
from torrent_desk.models import TorrentDescription, TorrentDescriptor
from torrent_desk.review import ConsoleReviewer, ReviewSession

LABELS = [make_label(1, "ubuntu", "/iso", name="Linux ISO"), make_label(2, "flac", "/music", name="Music")]


def pending_session(name=""):
    registry = MetadataPendingRegistry()
    descriptor = TorrentDescriptor(info_hash_v1=HASH_A, name=name, save_path="/downloads")
    session = ReviewSession(descriptor, registry, LABELS)
    session.open()
    registry.register([HASH_A])
    return session, registry


class ScriptedPrompts:
    """替换 click.confirm / click.prompt，按顺序给出回答

    回答为 None 时采用提示的默认值。
    """

    def __init__(self, confirm=True, answers=()):
        self.confirm_answer = confirm
        self.answers = list(answers)
        self.defaults = []

    def confirm(self, text, default=False, **kwargs):
        return self.confirm_answer

    def prompt(self, text, default=None, **kwargs):
        self.defaults.append(default)
        answer = self.answers.pop(0) if self.answers else None
        return default if answer is None else answer


@pytest.fixture
def prompts(monkeypatch):
    scripted = ScriptedPrompts()
    monkeypatch.setattr(click, "confirm", scripted.confirm)
    monkeypatch.setattr(click, "prompt", scripted.prompt)
    return scripted


class TestReviewSession:

    @pytest.mark.asyncio
    async def test_label_matched_once_name_is_known(self):
        session, registry = pending_session()
        assert session.descriptor.label_id is None

        registry.resolve(HASH_A, TorrentDescription(name="ubuntu-24.04-desktop.iso", info_hash_v1=HASH_A))

        assert session.metadata.name == "ubuntu-24.04-desktop.iso"
        assert session.descriptor.label_id == 1
        assert session.descriptor.save_path == "/iso"
        assert await session.wait_for_metadata(0)

    @pytest.mark.asyncio
    async def test_user_edit_is_not_overridden_by_late_match(self):
        session, registry = pending_session()
        session.apply_edits("/custom", None)

        registry.resolve(HASH_A, TorrentDescription(name="ubuntu.iso", info_hash_v1=HASH_A))

        assert session.descriptor.save_path == "/custom"
        assert session.descriptor.label_id is None

    @pytest.mark.asyncio
    async def test_named_descriptor_keeps_classification(self):
        session, registry = pending_session(name="Some.Show")

        registry.resolve(HASH_A, TorrentDescription(name="ubuntu.iso", info_hash_v1=HASH_A))

        assert session.descriptor.label_id is None
        assert session.descriptor.save_path == "/downloads"

    @pytest.mark.asyncio
    async def test_close_unsubscribes(self):
        session, registry = pending_session()
        session.close()

        assert registry.subscriber_count(HASH_A) == 0
        assert registry.resolve(HASH_A, TorrentDescription(name="x")) == 0
        assert session.metadata is None

    @pytest.mark.asyncio
    async def test_wait_times_out(self):
        session, _ = pending_session()
        assert await session.wait_for_metadata(0) is False
        assert await session.wait_for_metadata(0.01) is False


class TestConsoleReviewer:

    @pytest.mark.asyncio
    async def test_prompts_after_metadata_timeout(self, prompts):
        prompts.answers = ["/picked", "2"]
        session, _ = pending_session()

        descriptor = await ConsoleReviewer(metadata_wait_timeout=0.01).review(session)

        assert descriptor is session.descriptor
        assert descriptor.save_path == "/picked"
        assert descriptor.label_id == 2
        assert session.edited is True
        assert session.metadata is None

    @pytest.mark.asyncio
    async def test_cancel_returns_none(self, prompts):
        prompts.confirm_answer = False
        session, _ = pending_session()

        assert await ConsoleReviewer(metadata_wait_timeout=0).review(session) is None
        assert session.edited is False
        assert session.descriptor.save_path == "/downloads"

    @pytest.mark.asyncio
    async def test_no_label_choice(self, prompts):
        prompts.answers = [None, "-"]
        session, _ = pending_session()
        session.descriptor.label_id = 1

        descriptor = await ConsoleReviewer(metadata_wait_timeout=0).review(session)
        assert descriptor.label_id is None
        assert descriptor.save_path == "/downloads"

    @pytest.mark.asyncio
    async def test_metadata_arriving_during_wait_updates_defaults(self, prompts):
        session, registry = pending_session()
        description = TorrentDescription(name="ubuntu.iso", info_hash_v1=HASH_A, total_size=1024)
        asyncio.get_running_loop().call_later(0.01, registry.resolve, HASH_A, description)

        descriptor = await ConsoleReviewer(metadata_wait_timeout=5).review(session)

        assert session.metadata is description
        # 提示的默认值来自重新匹配的标签
        assert prompts.defaults == ["/iso", "1"]
        assert descriptor.label_id == 1
        assert descriptor.save_path == "/iso"
