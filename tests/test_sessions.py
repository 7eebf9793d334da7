import pytest

from editmerge import (
    ADDED, REMOVED, CRLF, DiffBlock, DiffSession, SessionStore, DiffVisualizer, DiffSessionManager,
    create_session, apply_keep_to_session, apply_reject_to_session, keep_block, reject_block, keep_all, reject_all,
    merge_blocks, EditBlock,
)
from editmerge.sessions import session_text
from tests.conftest import FakeEditor

PAIRS = [
    ("a\nb\nc\n", "a\nB\nc\n"),
    ("a\nb\nc\nd", "a\nB\nc\nD"),
    ("", "new\nfile"),
    ("gone\n", ""),
    ("x\n\ny\n", "x\ny\n\nz\n"),
    ("1\n2\n3\n4\n5\n", "0\n1\n3\n4\nfive\n5\n"),
]

@pytest.mark.parametrize("original,merged", PAIRS)
def test_complement_property(original, merged):
    session = create_session("f.py", original, merged)
    assert apply_reject_to_session(session) == original
    assert apply_keep_to_session(session) == merged

def test_crlf_session_round_trips():
    original = "a\r\nb\r\n"
    merged = "a\r\nc\r\n"
    session = create_session("f.py", original, merged)
    assert session.eol == CRLF
    assert "\r" not in session.combined_text
    assert apply_keep_to_session(session) == merged
    assert apply_reject_to_session(session) == original

def test_keep_all_is_idempotent():
    original = "a\nb\nc\n"
    merged = merge_blocks(original, [EditBlock("f.py", ("b",), ("B1", "B2"))])
    session = create_session("f.py", original, merged)
    assert not session.is_resolved

    text = keep_all(session)
    assert text == merged
    assert session.is_resolved
    assert keep_all(session) == text

def test_reject_all_restores_original():
    session = create_session("f.py", "a\nb\n", "a\nc\nd\n")
    assert reject_all(session) == "a\nb\n"
    assert session.is_resolved

def test_keep_and_reject_single_blocks_shift_remaining():
    session = create_session("f.py", "a\nb\nc\nd", "a\nB\nc\nD")
    assert session.unresolved_blocks == [
        DiffBlock(REMOVED, 2, 2), DiffBlock(ADDED, 3, 3), DiffBlock(REMOVED, 5, 5), DiffBlock(ADDED, 6, 6),
    ]

    keep_block(session, DiffBlock(REMOVED, 2, 2))
    assert session.combined_text == "a\nB\nc\nd\nD"
    assert session.unresolved_blocks == [DiffBlock(REMOVED, 4, 4), DiffBlock(ADDED, 5, 5)]

    reject_block(session, DiffBlock(ADDED, 5, 5))
    assert session.is_resolved
    assert session_text(session) == "a\nB\nc\nd"

def test_partial_resolution_then_keep_all():
    session = create_session("f.py", "a\nb\nc\nd", "a\nB\nc\nD")
    reject_block(session, DiffBlock(ADDED, 3, 3))
    assert apply_keep_to_session(session) == "a\nb\nc\nD"
    assert apply_reject_to_session(session) == "a\nb\nc\nd"

def test_resolving_unknown_block_is_noop():
    session = create_session("f.py", "a", "b")
    before = session.copy()
    keep_block(session, DiffBlock(ADDED, 9, 9))
    assert session == before

def test_session_dict_round_trip():
    session = create_session("src/f.py", "a\r\nb", "a\r\nc")
    assert DiffSession.from_dict(session.to_dict()) == session

class TestSessionStore:
    def test_keyed_by_normalized_path(self):
        store = SessionStore()
        session = create_session("./src/a.py", "a", "b")
        store.save(session)
        assert store.get("src/a.py") is session
        assert store.has_unresolved("src\\a.py")
        assert store.paths() == ["src/a.py"]
        assert store.remove("src/a.py") is session
        assert store.get("src/a.py") is None
        assert len(store) == 0

    def test_has_unresolved_false_when_resolved(self):
        store = SessionStore()
        session = create_session("a.py", "a", "b")
        keep_all(session)
        store.save(session)
        assert not store.has_unresolved("a.py")

class TestDiffVisualizer:
    def test_show_paints_and_stores(self, fake_editor, sink):
        store = SessionStore()
        viz = DiffVisualizer(fake_editor, sink, store)
        session = viz.show("a.py", "a\nb\nc", "a\nB\nc")

        assert store.get("a.py") is session
        assert fake_editor.buffers["a.py"] == "a\nb\nB\nc"
        decorations, zones = sink.last
        assert [d.line for d in decorations] == [2, 3]
        assert len(zones) == 1 and zones[0].anchor_line == 2
        assert viz.has_active_widgets()

    def test_show_without_changes(self, fake_editor, sink):
        viz = DiffVisualizer(fake_editor, sink)
        assert viz.show("a.py", "same", "same") is None
        assert fake_editor.writes == []

    def test_accept_and_reject_by_line(self, fake_editor, sink):
        store = SessionStore()
        viz = DiffVisualizer(fake_editor, sink, store)
        viz.show("a.py", "a\nb\nc\nd", "a\nB\nc\nD")

        assert viz.accept(3) == "a\nB\nc\nd\nD"
        assert viz.accept(1) is None
        assert viz.reject(4) == "a\nB\nc\nd"

        assert not viz.has_active_widgets()
        assert store.get("a.py") is None
        assert fake_editor.buffers["a.py"] == "a\nB\nc\nd"

    def test_accept_all(self, fake_editor, sink):
        viz = DiffVisualizer(fake_editor, sink)
        viz.show("a.py", "a\nb", "a\nc")
        assert viz.accept_all() == "a\nc"
        assert viz.session is None
        assert viz.accept_all() is None

    def test_restore_requires_ready_editor(self, sink):
        editor = FakeEditor(blocked=["a.py"])
        viz = DiffVisualizer(editor, sink)
        with pytest.raises(Exception):
            viz.restore(create_session("a.py", "a", "b"))

class TestDiffSessionManager:
    def test_switch_away_and_back_restores_progress(self, fake_editor, sink):
        store = SessionStore()
        viz = DiffVisualizer(fake_editor, sink, store)
        manager = DiffSessionManager(viz, store)

        manager.switch_to("a.py")
        viz.show("a.py", "a\nb\nc\nd", "a\nB\nc\nD")
        viz.accept(2)

        assert manager.switch_to("b.py") is None
        assert viz.session is None
        stored = store.get("a.py")
        assert stored.unresolved_blocks == [DiffBlock(REMOVED, 4, 4), DiffBlock(ADDED, 5, 5)]

        restored = manager.switch_to("a.py")
        assert restored is stored
        assert viz.session is stored
        assert fake_editor.buffers["a.py"] == "a\nB\nc\nd\nD"
        assert sink.last[0][0].line == 4

    def test_failed_restore_keeps_session(self, sink):
        editor = FakeEditor(blocked=["a.py"])
        store = SessionStore()
        viz = DiffVisualizer(editor, sink, store)
        manager = DiffSessionManager(viz, store)
        store.save(create_session("a.py", "a", "b"))

        assert manager.switch_to("a.py") is None
        assert store.has_unresolved("a.py")

    def test_resolved_file_has_nothing_to_restore(self, fake_editor, sink):
        store = SessionStore()
        viz = DiffVisualizer(fake_editor, sink, store)
        manager = DiffSessionManager(viz, store)

        manager.switch_to("a.py")
        viz.show("a.py", "a", "b")
        viz.accept_all()
        manager.switch_to("b.py")
        assert manager.switch_to("a.py") is None

    def test_resolved_stored_session_is_cleared_on_return(self, fake_editor, sink):
        store = SessionStore()
        manager = DiffSessionManager(DiffVisualizer(fake_editor, sink, store), store)
        session = create_session("a.py", "a", "b")
        keep_all(session)
        store.save(session)

        assert manager.switch_to("a.py") is None
        assert store.get("a.py") is None
        assert fake_editor.writes == []
