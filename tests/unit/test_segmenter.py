import random

import pytest

from research_relay.responses.segmenter import estimate_segment_count, needs_segmenting, split


def test_uniform_text_splits_into_three_segments() -> None:
    text = "A" * 2500

    segments = split(text, 1024)

    assert len(segments) == 3
    assert [segment.index for segment in segments] == [1, 2, 3]
    assert {segment.total_count for segment in segments} == {3}
    assert [len(segment.content) for segment in segments] == [1024, 1024, 452]
    assert "".join(segment.content for segment in segments) == text


def test_text_at_target_is_single_segment() -> None:
    segments = split("x" * 1024, 1024)

    assert len(segments) == 1
    assert segments[0].index == 1
    assert segments[0].total_count == 1


def test_empty_text_is_single_empty_segment() -> None:
    segments = split("", 10)

    assert len(segments) == 1
    assert segments[0].content == ""


def test_cut_moves_back_to_recent_newline() -> None:
    text = "a" * 900 + "\n" + "b" * 400

    segments = split(text, 1024)

    assert segments[0].content == "a" * 900 + "\n"
    assert segments[1].content == "b" * 400


def test_newline_outside_window_is_ignored() -> None:
    text = "a" * 100 + "\n" + "b" * 1500

    segments = split(text, 1024, newline_window=500)

    assert len(segments[0].content) == 1024


def test_segments_never_exceed_target() -> None:
    text = "\n".join("line %d %s" % (i, "z" * (i % 70)) for i in range(600))

    segments = split(text, 700, newline_window=200)

    assert all(len(segment.content) <= 700 for segment in segments)
    assert all(segment.content.endswith("\n") for segment in segments[:-1])


@pytest.mark.parametrize("seed", range(25))
def test_split_is_lossless_and_ordered(seed: int) -> None:
    rng = random.Random(seed)
    alphabet = "abc \n\t-é漢"
    text = "".join(rng.choice(alphabet) for _ in range(rng.randint(0, 5000)))
    target = rng.randint(1, 1500)
    window = rng.randint(0, 600)

    segments = split(text, target, newline_window=window)

    assert "".join(segment.content for segment in segments) == text
    assert [segment.index for segment in segments] == list(range(1, len(segments) + 1))
    assert all(segment.total_count == len(segments) for segment in segments)
    assert all(len(segment.content) <= target for segment in segments)


def test_non_positive_target_rejected() -> None:
    with pytest.raises(ValueError):
        split("abc", 0)


def test_helpers() -> None:
    assert needs_segmenting("x" * 11, 10) is True
    assert needs_segmenting("x" * 10, 10) is False
    assert estimate_segment_count("x" * 25, 10) == 3
    assert estimate_segment_count("", 10) == 1


def test_newline_at_window_start_is_used() -> None:
    text = "a" * 524 + "\n" + "b" * 1000

    segments = split(text, 1024, newline_window=500)

    assert segments[0].content == "a" * 524 + "\n"
    assert "".join(segment.content for segment in segments) == text
