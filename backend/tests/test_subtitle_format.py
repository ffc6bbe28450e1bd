"""Tests for SRT generation and block handling."""

import pytest

from toolbox_subtitles.schemas.subtitles import TranscriptWord
from toolbox_subtitles.utils.subtitle_format import (
    count_blocks,
    format_timestamp,
    generate_srt,
    split_into_blocks,
    srt_to_vtt,
)

from tests.fakes import ENGLISH_SRT, WORDS


def word(text, start, end, type_="word"):
    return TranscriptWord(text=text, type=type_, start=start, end=end)


@pytest.mark.parametrize(
    "seconds,expected",
    [
        (0.0, "00:00:00,000"),
        (0.3, "00:00:00,300"),
        (61.5, "00:01:01,500"),
        (3600, "01:00:00,000"),
        (3725.042, "01:02:05,042"),
        (1.9999, "00:00:01,999"),
        (-2.0, "00:00:00,000"),
    ],
)
def test_format_timestamp(seconds, expected):
    assert format_timestamp(seconds) == expected


def test_generate_srt_from_transcript():
    assert generate_srt(WORDS, 8) == ENGLISH_SRT


def test_generate_srt_skips_spacing_and_audio_events():
    words = [
        word("(music)", 0.0, 2.0, "audio_event"),
        word("Hello", 2.0, 2.4),
        word(" ", 2.4, 2.5, "spacing"),
        word("team", 2.5, 3.0),
    ]

    srt = generate_srt(words)

    assert srt == "1\n00:00:02,000 --> 00:00:03,000\nHello team\n\n"


def test_generate_srt_breaks_on_sentence_end():
    words = [
        word("Stop.", 0.0, 0.5),
        word("Is", 0.6, 0.7),
        word("it", 0.7, 0.8),
        word("safe?", 0.8, 1.2),
        word("Yes!", 1.3, 1.6),
        word("Go", 1.7, 2.0),
    ]

    blocks = split_into_blocks(generate_srt(words, 8))

    assert [block.split("\n")[2] for block in blocks] == ["Stop.", "Is it safe?", "Yes!", "Go"]


def test_generate_srt_bounds_cue_size():
    words = [word(f"w{i}", i, i + 0.5) for i in range(7)]

    blocks = split_into_blocks(generate_srt(words, 3))

    assert [block.split("\n")[2] for block in blocks] == ["w0 w1 w2", "w3 w4 w5", "w6"]
    assert [block.split("\n")[0] for block in blocks] == ["1", "2", "3"]
    assert blocks[1].split("\n")[1] == "00:00:03,000 --> 00:00:05,500"


def test_generate_srt_attaches_punctuation():
    words = [
        word("Stop", 0.0, 0.3),
        word(",", 0.3, 0.3, "punctuation"),
        word("look", 0.4, 0.7),
        word(".", 0.7, 0.7, "punctuation"),
    ]

    assert generate_srt(words) == "1\n00:00:00,000 --> 00:00:00,700\nStop, look.\n\n"


def test_generate_srt_empty_input():
    assert generate_srt([]) == ""
    assert generate_srt([word(" ", 0, 1, "spacing")]) == ""


def test_generate_srt_rejects_invalid_cue_size():
    with pytest.raises(ValueError):
        generate_srt(WORDS, 0)


def test_split_into_blocks_handles_crlf_and_extra_blank_lines():
    srt = (
        "1\r\n00:00:00,000 --> 00:00:01,000\r\nOne\r\n\r\n"
        "2\r\n00:00:01,000 --> 00:00:02,000\r\nTwo\r\n\r\n\r\n"
        "3\n00:00:02,000 --> 00:00:03,000\nThree\n\n"
    )

    blocks = split_into_blocks(srt)

    assert len(blocks) == 3
    assert blocks[2] == "3\n00:00:02,000 --> 00:00:03,000\nThree"
    assert count_blocks(srt) == 3
    assert split_into_blocks("") == []
    assert count_blocks("\n\n") == 0


def test_srt_to_vtt():
    vtt = srt_to_vtt("1\n00:00:00,000 --> 00:00:01,100\nWait, stop.\n\n")

    assert vtt.startswith("WEBVTT\n\n1\n00:00:00.000 --> 00:00:01.100\n")
    assert "Wait, stop." in vtt
