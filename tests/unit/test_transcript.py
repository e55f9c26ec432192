"""
Unit Tests for the Live Transcript Builder

Tests provisional entry lifecycle: full-replacement updates, promotion,
removal of empty replies, failure and cancel-and-restart.
"""
from finadvisor.engine.frame_reassembler import Frame
from finadvisor.engine.transcript import StreamOutcome, Transcript, TranscriptRole


def assistant_entries(transcript):
    return [e for e in transcript.entries if e.role == TranscriptRole.ASSISTANT.value]


class TestStreamHandle:
    def test_start_stream_appends_provisional_entry(self):
        transcript = Transcript(session_id="s1")
        transcript.add_user_message("Harcamalarım nasıl?")

        handle = transcript.start_stream()

        assert handle.is_active
        assert transcript.active_stream is handle
        assert transcript.entries[-1] is handle.entry
        assert handle.entry.is_provisional
        assert handle.entry.content == ""

    def test_each_delta_replaces_content_with_full_text(self):
        transcript = Transcript()
        handle = transcript.start_stream()

        handle.apply(Frame.delta("Bu ay "))
        assert handle.entry.content == "Bu ay "

        handle.apply(Frame.delta("₺18.200 harcadınız"))
        assert handle.entry.content == "Bu ay ₺18.200 harcadınız"
        assert handle.content == handle.entry.content
        assert handle.entry.is_provisional

    def test_end_frame_promotes_entry(self):
        transcript = Transcript()
        handle = transcript.start_stream()
        handle.apply(Frame.delta("Tamam"))

        handle.apply(Frame.end())

        assert handle.outcome is StreamOutcome.COMPLETED
        assert not handle.entry.is_provisional
        assert transcript.active_stream is None
        assert transcript.entries[-1].content == "Tamam"

    def test_empty_reply_is_removed_on_finish(self):
        transcript = Transcript()
        transcript.add_user_message("?")
        handle = transcript.start_stream()

        handle.finish()

        assert assistant_entries(transcript) == []
        assert len(transcript.entries) == 1

    def test_failure_keeps_partial_content(self):
        transcript = Transcript()
        handle = transcript.start_stream()
        handle.apply(Frame.delta("Yarım cev"))

        error = RuntimeError("connection reset")
        handle.fail(error)

        assert handle.outcome is StreamOutcome.FAILED
        assert handle.error is error
        assert transcript.entries[-1].content == "Yarım cev"
        assert not transcript.entries[-1].is_provisional

    def test_failure_before_content_removes_entry(self):
        transcript = Transcript()
        handle = transcript.start_stream()

        handle.fail()

        assert assistant_entries(transcript) == []
        assert transcript.active_stream is None

    def test_frames_after_settle_are_ignored(self):
        transcript = Transcript()
        handle = transcript.start_stream()
        handle.apply(Frame.delta("a"))
        handle.finish()

        handle.apply(Frame.delta("b"))
        handle.fail(RuntimeError("late"))

        assert handle.entry.content == "a"
        assert handle.outcome is StreamOutcome.COMPLETED
        assert handle.error is None

    def test_empty_delta_does_not_promote(self):
        transcript = Transcript()
        handle = transcript.start_stream()
        handle.apply(Frame.delta(""))

        handle.finish()

        assert assistant_entries(transcript) == []


class TestCancelAndRestart:
    def test_new_stream_cancels_active_one(self):
        transcript = Transcript()
        transcript.add_user_message("ilk soru")
        first = transcript.start_stream()
        first.apply(Frame.delta("ilk cevap"))

        second = transcript.start_stream()

        assert first.outcome is StreamOutcome.CANCELLED
        assert transcript.active_stream is second
        assert [e.content for e in assistant_entries(transcript)] == ["ilk cevap", ""]
        assert sum(1 for e in transcript.entries if e.is_provisional) == 1

    def test_cancelled_empty_stream_leaves_no_bubble(self):
        transcript = Transcript()
        first = transcript.start_stream()

        second = transcript.start_stream()

        assert first.outcome is StreamOutcome.CANCELLED
        assert transcript.entries == [second.entry]

    def test_cancelled_handle_ignores_late_frames(self):
        transcript = Transcript()
        first = transcript.start_stream()
        second = transcript.start_stream()

        first.apply(Frame.delta("geç kalan"))
        second.apply(Frame.delta("yeni"))

        assert [e.content for e in transcript.entries] == ["yeni"]

    def test_cancel_active_without_stream(self):
        transcript = Transcript()
        assert transcript.cancel_active() is False

        handle = transcript.start_stream()
        assert transcript.cancel_active() is True
        assert handle.outcome is StreamOutcome.CANCELLED
        assert transcript.cancel_active() is False


class TestToMessages:
    def test_provisional_entries_are_excluded(self):
        transcript = Transcript()
        transcript.add_user_message("Soru 1")
        handle = transcript.start_stream()
        handle.apply(Frame.delta("Cevap 1"))
        handle.finish()
        transcript.add_user_message("Soru 2")
        live = transcript.start_stream()
        live.apply(Frame.delta("Cev"))

        assert transcript.to_messages() == [
            {"role": "user", "content": "Soru 1"},
            {"role": "assistant", "content": "Cevap 1"},
            {"role": "user", "content": "Soru 2"},
        ]

    def test_entries_returns_a_copy(self):
        transcript = Transcript()
        transcript.add_user_message("x")

        transcript.entries.clear()

        assert len(transcript.entries) == 1
