"""
Tests for change sinks: fan-out and the JSON progress writer.
"""

import json

import pytest

from combotree.core.types import Status
from combotree.session import Session
from combotree.ui.sinks import CompositeSink, NullSink, ProgressWriter


class TestCompositeSink:
    def test_fans_out_in_order(self, session, recording_sink_factory):
        a, b = recording_sink_factory(), recording_sink_factory()
        session.sink = CompositeSink(a, b)
        session.set_remark("local.native.get", "x")
        assert a.calls == b.calls == [
            ("render_node", "local.native.get"),
            ("update_detail", "local.native.get"),
        ]

    def test_null_sink_accepts_everything(self, session):
        sink = NullSink()
        sink.render_node("x")
        sink.render_ancestors_of(session.tree.leaves[0])
        sink.update_summary()
        sink.update_detail("x")


class TestProgressWriter:
    def test_writes_summary_on_update(self, session, tmp_path):
        path = tmp_path / "progress.json"
        writer = ProgressWriter(path, session)
        session.sink = writer

        session.mark_status("local", Status.PASS)
        data = json.loads(path.read_text())
        assert data["status"] == "idle"
        assert data["summary"]["passed"] == 6
        assert data["running"] == []
        assert "local.native.get: pass" in data["log_lines"]

    @pytest.mark.asyncio
    async def test_run_ends_idle(self, schema, fast_settings, tmp_path, fake_task_factory):
        path = tmp_path / "progress.json"
        session = Session.create(schema, settings=fast_settings)
        session.sink = ProgressWriter(path, session)

        await session.run_subtree("local.native", task=fake_task_factory())
        data = json.loads(path.read_text())
        assert data["status"] == "idle"
        assert data["summary"]["passed"] == 2
        lines = data["log_lines"]
        assert "local.native.get: running" in lines
        assert "local.native.get: pass" in lines

    def test_log_lines_bounded(self, session, tmp_path):
        writer = ProgressWriter(tmp_path / "p.json", session, max_log_lines=3)
        session.sink = writer
        session.mark_status("local", Status.FAIL)
        assert len(writer.log_lines) == 3

    def test_creates_parent_directory(self, session, tmp_path):
        ProgressWriter(tmp_path / "nested" / "dir" / "p.json", session)
        assert (tmp_path / "nested" / "dir").is_dir()
