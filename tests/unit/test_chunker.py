"""Tests for the document chunker.

All tests are deterministic and exercise only the pure splitting function.
"""

import pytest

from backend.chatbot.docs.chunker import (
    ChunkConfig,
    ChunkMethod,
    TextChunk,
    default_chunk_config,
    estimate_token_count,
    split_into_chunks,
)


def _policy_text(sentences: int = 30) -> str:
    return " ".join(
        f"Sentence number {i:02d} describes the cinema ticket policy for weekday evening shows."
        for i in range(sentences)
    )


def _assert_offsets_match(text: str, chunks: list[TextChunk]) -> None:
    for chunk in chunks:
        assert chunk.start_pos < chunk.end_pos
        assert text[chunk.start_pos : chunk.end_pos] == chunk.content
        assert chunk.token_count == estimate_token_count(chunk.content)


class TestBasics:
    def test_empty_input_yields_no_chunks(self) -> None:
        assert split_into_chunks("") == []
        assert split_into_chunks("   \n\n  ") == []

    def test_token_estimate_is_ceiling_of_quarter_length(self) -> None:
        assert estimate_token_count("") == 0
        assert estimate_token_count("abcd") == 1
        assert estimate_token_count("abcde") == 2

    def test_default_config_matches_ingestion_settings(self) -> None:
        config = default_chunk_config()
        assert config.max_size == 800
        assert config.overlap == 100
        assert config.method == ChunkMethod.SENTENCE
        assert config.min_size == 50

    def test_short_text_is_kept_when_it_is_all_there_is(self) -> None:
        chunks = split_into_chunks("Tickets are sold daily.")
        assert len(chunks) == 1
        assert chunks[0].content == "Tickets are sold daily."
        assert chunks[0].start_pos == 0
        assert chunks[0].end_pos == len("Tickets are sold daily.")

    def test_deterministic(self) -> None:
        text = _policy_text()
        assert split_into_chunks(text) == split_into_chunks(text)


class TestSentenceMethod:
    def test_2400_char_document_gives_overlapping_chunks(self) -> None:
        text = _policy_text()
        assert len(text) >= 2400

        chunks = split_into_chunks(text, ChunkConfig(max_size=800, overlap=100, method=ChunkMethod.SENTENCE))

        assert len(chunks) >= 3
        assert all(len(c.content) <= 800 for c in chunks)
        _assert_offsets_match(text, chunks)

        for previous, current in zip(chunks, chunks[1:]):
            # Overlap: next chunk starts inside the previous one
            assert current.start_pos < previous.end_pos
            assert current.start_pos >= previous.start_pos
            last_sentence = previous.content.split(". ")[-1]
            assert current.content.startswith(last_sentence.rstrip("."))

    def test_sentence_punctuation_is_preserved(self) -> None:
        text = _policy_text(12)
        chunks = split_into_chunks(text, ChunkConfig(max_size=300, overlap=0))

        for chunk in chunks:
            assert chunk.content.endswith(".")

    def test_chunks_cover_whole_text(self) -> None:
        text = _policy_text(25)
        chunks = split_into_chunks(text, ChunkConfig(max_size=400, overlap=100))

        assert chunks[0].start_pos == 0
        assert chunks[-1].end_pos == len(text)
        for previous, current in zip(chunks, chunks[1:]):
            # No gap between consecutive chunks (only the joining space may be skipped)
            assert current.start_pos <= previous.end_pos + 1

    def test_oversized_sentence_is_emitted_whole(self) -> None:
        long_sentence = "A" * 900 + "."
        text = f"Short opening sentence about the box office. {long_sentence} Closing note on refunds here."
        chunks = split_into_chunks(text, ChunkConfig(max_size=800, overlap=0, min_size=10))

        assert any(c.content == long_sentence for c in chunks)

    def test_no_chunk_below_min_size_when_more_content_exists(self) -> None:
        text = _policy_text(20) + " Ok."
        chunks = split_into_chunks(text, ChunkConfig(max_size=325, overlap=50, min_size=50))

        assert len(chunks) > 1
        assert all(len(c.content) >= 50 for c in chunks)
        assert all(len(c.content) <= 325 for c in chunks)
        _assert_offsets_match(text, chunks)
        # Full chunks leave no room, so the short tail takes the previous sentence with it
        assert chunks[-1].content == "Sentence number 19 describes the cinema ticket policy for weekday evening shows. Ok."
        assert chunks[-1].end_pos == len(text)

    def test_short_opening_before_long_sentence_stays_within_max_size(self) -> None:
        long_sentence = "B" * 779 + "."
        text = f"Hello there friends. {long_sentence}"

        chunks = split_into_chunks(text, ChunkConfig(max_size=800, overlap=100, min_size=50))

        assert [c.content for c in chunks] == ["Hello there friends.", long_sentence]
        _assert_offsets_match(text, chunks)

    def test_overlap_never_pushes_chunk_past_max_size(self) -> None:
        sentences = [("x" * 95) + "." for _ in range(20)]
        text = " ".join(sentences)
        chunks = split_into_chunks(text, ChunkConfig(max_size=200, overlap=100, min_size=10))

        assert all(len(c.content) <= 200 for c in chunks)


class TestParagraphMethod:
    def test_paragraphs_are_joined_by_blank_lines(self) -> None:
        paragraphs = [f"Paragraph {i} explains seat selection and refund windows in detail." for i in range(10)]
        text = "\n\n".join(paragraphs)

        chunks = split_into_chunks(text, ChunkConfig(max_size=250, overlap=80, method=ChunkMethod.PARAGRAPH))

        assert len(chunks) > 1
        assert all(len(c.content) <= 250 for c in chunks)
        assert "\n\n" in chunks[0].content
        assert chunks[0].content.startswith("Paragraph 0")
        assert chunks[-1].content.endswith(paragraphs[-1])

    def test_windows_line_endings_are_normalized(self) -> None:
        text = "First paragraph about matinee prices.\r\n\r\nSecond paragraph about evening prices."
        chunks = split_into_chunks(text, ChunkConfig(method=ChunkMethod.PARAGRAPH, min_size=10))

        assert len(chunks) == 1
        assert "\r" not in chunks[0].content


class TestFixedMethod:
    def test_fixed_windows_respect_max_size_and_terminate(self) -> None:
        text = " ".join(["word"] * 600)
        chunks = split_into_chunks(text, ChunkConfig(max_size=200, overlap=50, method=ChunkMethod.FIXED))

        assert len(chunks) > 1
        assert all(len(c.content) <= 200 for c in chunks)
        assert chunks[-1].end_pos == len(text)

    def test_fixed_breaks_on_whitespace(self) -> None:
        text = " ".join(["cinema"] * 200)
        chunks = split_into_chunks(text, ChunkConfig(max_size=100, overlap=10, method=ChunkMethod.FIXED))

        for chunk in chunks:
            assert chunk.content.endswith("cinema")
            assert text[chunk.end_pos : chunk.end_pos + 1] in ("", " ")

    def test_fixed_drops_tiny_windows(self) -> None:
        text = "a" * 120
        chunks = split_into_chunks(text, ChunkConfig(max_size=100, overlap=0, method=ChunkMethod.FIXED, min_size=50))

        # The 20-char remainder is below min_size
        assert [len(c.content) for c in chunks] == [100]

    def test_overlap_larger_than_window_still_progresses(self) -> None:
        text = "b" * 500
        chunks = split_into_chunks(text, ChunkConfig(max_size=100, overlap=150, method=ChunkMethod.FIXED, min_size=1))

        assert chunks
        assert chunks[-1].end_pos == 500


@pytest.mark.parametrize("method", list(ChunkMethod))
def test_every_method_accepts_plain_string_method(method: ChunkMethod) -> None:
    config = ChunkConfig(method=method.value)  # type: ignore[arg-type]
    chunks = split_into_chunks(_policy_text(15), config)
    assert chunks
