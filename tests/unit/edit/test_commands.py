"""Tests for edit/commands.py: the serialized command queue."""

from __future__ import annotations

import dataclasses

import pytest

from pagedraft.edit.commands import CommandQueue, DiscardEdit, InsertBlock, MoveBlock, UpdateBlock
from pagedraft.models import Placement


class TestCommandValues:
    def test_insert_defaults(self):
        command = InsertBlock(path="p.html", html="<p>x</p>")
        assert command.anchor is None
        assert command.placement == Placement.AFTER
        assert command.position is None

    def test_commands_are_frozen(self):
        command = MoveBlock(path="p.html", record_id="e1", position=2)
        with pytest.raises(dataclasses.FrozenInstanceError):
            command.position = 3


class TestCommandQueue:
    def test_returns_handler_result(self):
        queue = CommandQueue(lambda c: f"handled {c.record_id}")
        assert queue.submit(DiscardEdit(path="p", record_id="e1")) == "handled e1"
        assert queue.pending == 0

    def test_fifo_order(self):
        seen = []
        queue = CommandQueue(lambda c: seen.append(c.record_id))
        for i in range(3):
            queue.submit(DiscardEdit(path="p", record_id=f"e{i}"))
        assert seen == ["e0", "e1", "e2"]

    def test_reentrant_submit_is_queued(self):
        seen = []
        queue: CommandQueue

        def handler(command):
            seen.append(("start", command.record_id))
            if command.record_id == "outer":
                nested = queue.submit(DiscardEdit(path="p", record_id="inner"))
                assert nested is None
                assert queue.draining
            seen.append(("end", command.record_id))
            return command.record_id

        queue = CommandQueue(handler)
        assert queue.submit(DiscardEdit(path="p", record_id="outer")) == "outer"
        assert seen == [
            ("start", "outer"),
            ("end", "outer"),
            ("start", "inner"),
            ("end", "inner"),
        ]
        assert not queue.draining

    def test_handler_error_propagates_and_keeps_rest(self):
        calls = []

        def handler(command):
            calls.append(command.record_id)
            if command.record_id == "bad":
                queue.submit(UpdateBlock(path="p", record_id="later", html="<p>x</p>"))
                raise ValueError("boom")
            return command.record_id

        queue = CommandQueue(handler)
        with pytest.raises(ValueError, match="boom"):
            queue.submit(DiscardEdit(path="p", record_id="bad"))
        assert queue.pending == 1
        assert not queue.draining
        assert queue.submit(DiscardEdit(path="p", record_id="next")) is not None
        assert calls == ["bad", "later", "next"]
