"""Tests for core data models."""

import pytest

from appstax_live.models import (
    ChannelEventRequest,
    ChannelEventType,
    ModelConfig,
    ModelEvent,
    WatchOptions,
    WatchStatus,
    WatchSummary,
)


class TestWatchOptions:
    def test_defaults(self):
        """Options default to the whole collection, unexpanded."""
        options = WatchOptions()
        assert options.collection is None
        assert options.filter == ""
        assert options.order is None
        assert options.expand == 0

    def test_expand_must_be_non_negative(self):
        """A negative expand depth is rejected."""
        with pytest.raises(Exception):
            WatchOptions(expand=-1)

    def test_explicit_values(self):
        """Explicit values are kept as given."""
        options = WatchOptions(collection="posts", filter="category='news'", order="title", expand=2)
        assert options.collection == "posts"
        assert options.expand == 2


class TestModelConfig:
    def test_defaults(self):
        """Default config uses the objects/ prefix and an unbounded store."""
        config = ModelConfig()
        assert config.channel_prefix == "objects/"
        assert config.default_order == "-created"
        assert config.max_cached_objects is None

    def test_capacity_bounds(self):
        """Store capacity must be at least one."""
        with pytest.raises(Exception):
            ModelConfig(max_cached_objects=0)


class TestEvents:
    def test_model_event_defaults_to_change(self):
        """Model events are change events unless stated otherwise."""
        event = ModelEvent()
        assert event.type == "change"
        assert event.watch is None

    def test_channel_event_request_parses_type(self):
        """Webhook requests parse their event type."""
        req = ChannelEventRequest(type="object.updated", object={"sysObjectId": "p1"})
        assert req.type == ChannelEventType.UPDATED

    def test_channel_event_request_rejects_unknown_type(self):
        """Unknown event types fail validation."""
        with pytest.raises(Exception):
            ChannelEventRequest(type="object.moved")


class TestWatchSummary:
    def test_serializes_status(self):
        """Status serializes to its string value."""
        summary = WatchSummary(
            name="posts",
            collection="posts",
            filter="",
            order="-created",
            expand=0,
            status=WatchStatus.LOADED,
            count=3,
        )
        data = summary.model_dump(mode="json")
        assert data["status"] == "loaded"
        assert data["related_collections"] == []
