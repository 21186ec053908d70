"""
Tests for app/embeddings/pipeline.py
Embedding pipeline - skip-on-unchanged, blank handling, batch sweeps, stats.
"""

import sys
from pathlib import Path

_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import pytest
from unittest.mock import Mock

from conftest import text_parts


@pytest.fixture
def pipeline(services):
    return services.pipeline


def _row_count(db):
    from app.embeddings.models import MessageEmbedding
    return db.query(MessageEmbedding).count()


class TestProcess:
    """Test single-message processing."""

    def test_creates_embedding_with_content_hash(self, pipeline, services, fake_client, make_chat, make_message):
        from app.embeddings.content import generate_content_hash

        msg = make_message(make_chat(), text_parts("  Hello world "))

        assert pipeline.process(msg) is True

        row = services.store.get(msg.id)
        assert row.content_hash == generate_content_hash("Hello world")
        assert fake_client.calls == ["Hello world"]
        assert len(row.vector) == 1536

    def test_unchanged_content_makes_no_remote_call(self, pipeline, fake_client, make_chat, make_message):
        """Test re-processing unchanged content issues zero embedding calls."""
        msg = make_message(make_chat(), text_parts("stable text"))
        pipeline.process(msg)
        assert len(fake_client.calls) == 1

        assert pipeline.process(msg) is False
        assert pipeline.process(msg) is False
        assert len(fake_client.calls) == 1

    def test_changed_content_re_embeds_in_place(self, pipeline, services, db, fake_client, make_chat, make_message):
        from app.embeddings.content import generate_content_hash

        msg = make_message(make_chat(), text_parts("first version"))
        pipeline.process(msg)

        msg.parts = text_parts("second version")
        db.commit()
        assert pipeline.process(msg) is True

        assert _row_count(db) == 1
        assert services.store.get(msg.id).content_hash == generate_content_hash("second version")
        assert len(fake_client.calls) == 2

    @pytest.mark.parametrize("parts", [
        [],
        [{"type": "image", "url": "https://example.com/a.png"}],
        [{"type": "text", "text": "   "}],
        [None, {"type": "file", "name": "a.pdf"}],
    ])
    def test_blank_content_never_persists(self, pipeline, db, fake_client, make_chat, make_message, parts):
        msg = make_message(make_chat(), parts)

        assert pipeline.process(msg) is False

        assert _row_count(db) == 0
        assert fake_client.calls == []

    def test_accepts_plain_dict_message(self, pipeline, services, make_chat, make_message):
        msg = make_message(make_chat(), text_parts("dict body"))

        pipeline.process({"id": msg.id, "parts": msg.parts, "createdAt": msg.created_at})

        assert services.store.exists(msg.id)

    def test_client_error_propagates(self, pipeline, db, make_chat, make_message):
        msg = make_message(make_chat(), text_parts("boom"))
        pipeline.client = Mock()
        pipeline.client.embed.side_effect = RuntimeError("quota exceeded")

        with pytest.raises(RuntimeError, match="quota"):
            pipeline.process(msg)
        assert _row_count(db) == 0


class TestProcessMessageId:
    """Test processing by id through the message store."""

    def test_known_id(self, pipeline, services, make_chat, make_message):
        msg = make_message(make_chat(), text_parts("by id"))

        pipeline.process_message_id(msg.id)

        assert services.store.exists(msg.id)

    def test_unknown_id_is_not_an_error(self, pipeline, fake_client):
        pipeline.process_message_id("missing")
        assert fake_client.calls == []


class TestEnsureEmbedding:
    """Test create-if-absent."""

    def test_creates_when_absent(self, pipeline, services, make_chat, make_message):
        msg = make_message(make_chat(), text_parts("ensure me"))

        assert pipeline.ensure_embedding(msg.id) is True
        assert services.store.exists(msg.id)

    def test_noop_when_present(self, pipeline, fake_client, make_chat, make_message):
        msg = make_message(make_chat(), text_parts("ensure me"))
        pipeline.ensure_embedding(msg.id)

        assert pipeline.ensure_embedding(msg.id) is True
        assert len(fake_client.calls) == 1

    def test_missing_message(self, pipeline):
        assert pipeline.ensure_embedding("missing") is False


class TestProcessMissingBatch:
    """Test the sweep over messages with no embedding row."""

    def test_processes_newest_first_up_to_batch_size(self, pipeline, services, make_chat, make_message):
        chat = make_chat()
        oldest = make_message(chat, text_parts("one"))
        middle = make_message(chat, text_parts("two"))
        newest = make_message(chat, text_parts("three"))

        assert pipeline.process_missing_batch(2) == 2

        assert services.store.exists(newest.id)
        assert services.store.exists(middle.id)
        assert not services.store.exists(oldest.id)

        assert pipeline.process_missing_batch(2) == 1
        assert services.store.exists(oldest.id)
        assert pipeline.process_missing_batch(2) == 0

    def test_skips_blank_messages_without_counting(self, pipeline, make_chat, make_message):
        chat = make_chat()
        make_message(chat, text_parts("has text"))
        make_message(chat, [{"type": "image", "url": "x"}])

        assert pipeline.process_missing_batch(10) == 1

    def test_continues_past_failures(self, pipeline, services, fake_client, make_chat, make_message):
        chat = make_chat()
        good_old = make_message(chat, text_parts("good old"))
        bad = make_message(chat, text_parts("explode"))
        good_new = make_message(chat, text_parts("good new"))

        real_embed = fake_client.embed

        def flaky(text):
            if "explode" in text:
                raise RuntimeError("remote failure")
            return real_embed(text)

        fake_client.embed = flaky

        assert pipeline.process_missing_batch(10) == 2
        assert services.store.exists(good_old.id)
        assert services.store.exists(good_new.id)
        assert not services.store.exists(bad.id)

    def test_throttles_between_items_not_after_last(self, services, make_chat, make_message):
        from app.embeddings.config import EmbeddingConfig
        from app.embeddings.pipeline import EmbeddingPipeline

        sleep = Mock()
        pipeline = EmbeddingPipeline(
            services.client,
            services.store,
            services.pipeline.message_store,
            EmbeddingConfig(processing_delay_ms=100),
            sleep=sleep,
        )
        chat = make_chat()
        for text in ("a1", "b2", "c3"):
            make_message(chat, text_parts(text))

        assert pipeline.process_missing_batch(10) == 3
        assert sleep.call_count == 2
        sleep.assert_called_with(0.1)

    def test_default_batch_size_from_config(self, services, make_chat, make_message):
        from app.embeddings.config import EmbeddingConfig
        from app.embeddings.pipeline import EmbeddingPipeline

        pipeline = EmbeddingPipeline(
            services.client,
            services.store,
            services.pipeline.message_store,
            EmbeddingConfig(batch_size=2, processing_delay_ms=0),
        )
        chat = make_chat()
        for text in ("a1", "b2", "c3"):
            make_message(chat, text_parts(text))

        assert pipeline.process_missing_batch() == 2


class TestBackfillHelpers:
    """Test recent-message and explicit-id backfills."""

    def test_ensure_recent_messages(self, pipeline, services, make_chat, make_message):
        chat = make_chat()
        old = make_message(chat, text_parts("old"))
        recent = make_message(chat, text_parts("recent"))

        assert pipeline.ensure_recent_messages(limit=1) == 1
        assert services.store.exists(recent.id)
        assert not services.store.exists(old.id)

    def test_batch_create_embeddings(self, pipeline, services, fake_client, make_chat, make_message):
        chat = make_chat()
        ids = [make_message(chat, text_parts(f"text {i}")).id for i in range(5)]
        pipeline.ensure_embedding(ids[0])

        assert pipeline.batch_create_embeddings(ids + ["missing"], batch_size=2) == 4
        assert all(services.store.exists(i) for i in ids)
        assert len(fake_client.calls) == 5


class TestStats:
    """Test coverage arithmetic."""

    def test_half_coverage(self, pipeline, make_chat, make_message):
        chat = make_chat()
        embedded = make_message(chat, text_parts("one"))
        make_message(chat, text_parts("two"))
        pipeline.process(embedded)

        stats = pipeline.get_stats()
        assert stats.total_messages == 2
        assert stats.messages_with_embeddings == 1
        assert stats.coverage == 50

    def test_empty_database_has_zero_coverage(self, pipeline):
        stats = pipeline.get_stats()
        assert stats.total_messages == 0
        assert stats.coverage == 0

    def test_coverage_rounded_to_two_places(self, pipeline, make_chat, make_message):
        chat = make_chat()
        first = make_message(chat, text_parts("one"))
        make_message(chat, text_parts("two"))
        make_message(chat, text_parts("three"))
        pipeline.process(first)

        assert pipeline.get_stats().coverage == 33.33


def _throttled_pipeline(services, sleep, **config):
    from app.embeddings.config import EmbeddingConfig
    from app.embeddings.pipeline import EmbeddingPipeline

    return EmbeddingPipeline(
        services.client,
        services.store,
        services.pipeline.message_store,
        EmbeddingConfig(**config),
        sleep=sleep,
    )


class TestBatchSizeAndThrottleEdges:
    """Test explicit zero batch sizes and the trailing throttle."""

    def test_zero_batch_size_processes_nothing(self, pipeline, services, fake_client, make_chat, make_message):
        msg = make_message(make_chat(), text_parts("waiting"))

        assert pipeline.process_missing_batch(0) == 0
        assert pipeline.process_missing_batch(-5) == 0

        assert fake_client.calls == []
        assert not services.store.exists(msg.id)

    def test_batch_create_with_zero_batch_size(self, pipeline, services, fake_client, make_chat, make_message):
        msg = make_message(make_chat(), text_parts("waiting"))

        assert pipeline.batch_create_embeddings([msg.id], batch_size=0) == 0

        assert fake_client.calls == []
        assert not services.store.exists(msg.id)

    def test_ensure_recent_does_not_sleep_after_last(self, services, make_chat, make_message):
        sleep = Mock()
        pipeline = _throttled_pipeline(services, sleep, processing_delay_ms=100)
        chat = make_chat()
        make_message(chat, text_parts("older"))
        make_message(chat, text_parts("newer"))

        assert pipeline.ensure_recent_messages(limit=10) == 2
        assert sleep.call_count == 1
        sleep.assert_called_with(0.1)

    def test_ensure_recent_single_message_never_sleeps(self, services, make_chat, make_message):
        sleep = Mock()
        pipeline = _throttled_pipeline(services, sleep, processing_delay_ms=100)
        make_message(make_chat(), text_parts("only one"))

        assert pipeline.ensure_recent_messages(limit=10) == 1
        sleep.assert_not_called()
