# tests/unit/test_decoder.py
"""
Unit tests for stream reassembly
"""

import random
import struct

import pytest

from core.decoder import Framing, FrameReassembler, parse_voltage, scale_adc


def voltages(samples):
    return [s.voltage for s in samples]


def feed(reassembler, chunks):
    out = []
    for chunk in chunks:
        out.extend(reassembler.ingest(chunk))
    return out


def random_split(data, rng, max_len=9):
    pieces, i = [], 0
    while i < len(data):
        n = rng.randint(1, max_len)
        pieces.append(data[i:i + n])
        i += n
    return pieces


class TestParseVoltage:

    @pytest.mark.parametrize("record,expected", [
        ("1.25", 1.25), (" -0.5 ", -0.5), ("3\r", 3.0), ("1e-3", 0.001)
    ])
    def test_valid_records(self, record, expected):
        assert parse_voltage(record) == pytest.approx(expected)

    @pytest.mark.parametrize("record", ["", "  ", "abc", "1.2.3", "nan", "inf", "-inf"])
    def test_invalid_records(self, record):
        assert parse_voltage(record) is None


class TestTextFraming:
    """Test newline-delimited text reassembly"""

    def test_record_split_across_chunks(self):
        """A record split over two notifications is emitted once, whole"""
        r = FrameReassembler()
        first = r.ingest("1.0\n2.0\n3.")
        assert voltages(first) == [1.0, 2.0]
        assert r.pending == "3."

        second = r.ingest("5\n4.0\n")
        assert voltages(second) == [3.5, 4.0]
        assert r.pending == ""

    def test_split_points_do_not_matter(self):
        """Any chunking of the same stream yields the same samples"""
        rng = random.Random(42)
        values = [round(rng.uniform(-1.5, 1.5), 4) for _ in range(300)]
        stream = "".join(f"{v}\n" for v in values)

        for _ in range(20):
            r = FrameReassembler()
            out = feed(r, random_split(stream, rng))
            assert voltages(out) == values
            assert r.pending == ""

    def test_byte_chunks_split_anywhere(self):
        """Bytes chunks behave like text, even one byte at a time"""
        stream = b"0.12\n-0.34\n1.05\n"
        r = FrameReassembler()
        out = feed(r, [stream[i:i + 1] for i in range(len(stream))])
        assert voltages(out) == [0.12, -0.34, 1.05]

    def test_multibyte_character_split_across_chunks(self):
        """A UTF-8 sequence cut in half is decoded once both halves arrive"""
        data = "1.0\nµV\n2.0\n".encode("utf-8")
        cut = data.index(b"\xc2") + 1
        r = FrameReassembler()
        out = feed(r, [data[:cut], data[cut:]])
        assert voltages(out) == [1.0, 2.0]
        assert r.records_dropped == 1

    def test_malformed_record_drops_one_sample(self):
        """One bad record costs exactly one sample"""
        r = FrameReassembler()
        out = feed(r, ["1.0\n2.0\nab", "c\n4.0\n"])
        assert voltages(out) == [1.0, 2.0, 4.0]
        assert r.records_dropped == 1
        assert r.records_emitted == 3

    def test_blank_records_are_skipped_silently(self):
        r = FrameReassembler()
        out = r.ingest("\n\n 1.5 \n\r\n")
        assert voltages(out) == [1.5]
        assert r.records_dropped == 0

    def test_non_finite_values_dropped(self):
        r = FrameReassembler()
        out = r.ingest("nan\n0.5\ninf\n")
        assert voltages(out) == [0.5]
        assert r.records_dropped == 2

    def test_trailing_fragment_is_never_emitted(self):
        """The carry-over waits for its terminator"""
        r = FrameReassembler()
        assert r.ingest("12.") == []
        assert r.ingest("5") == []
        assert r.pending == "12.5"
        assert voltages(r.ingest("\n")) == [12.5]

    def test_reset_discards_carry_over(self):
        r = FrameReassembler()
        r.ingest("7.7")
        r.reset()
        assert r.pending == ""
        assert voltages(r.ingest("1.0\n")) == [1.0]

    def test_samples_stamped_from_clock(self):
        """Emitted samples carry the clock reading at emission"""
        now = [42]
        r = FrameReassembler(clock=lambda: now[0])
        first = r.ingest("1.0\n2.0\n")
        now[0] = 60
        second = r.ingest("3.0\n")
        assert [s.time for s in first] == [42, 42]
        assert [s.time for s in second] == [60]


class TestBinaryFraming:
    """Test little-endian int16 reassembly"""

    def test_words_split_across_chunks(self):
        data = struct.pack("<hhh", 0, 4095, -4095)
        r = FrameReassembler(Framing.BINARY)
        out = feed(r, [data[:1], data[1:4], data[4:5], data[5:]])
        assert voltages(out) == pytest.approx([0.0, 3.3, -3.3])

    def test_odd_byte_is_carried_over(self):
        r = FrameReassembler(Framing.BINARY)
        assert voltages(r.ingest(struct.pack("<h", 2048) + b"\x10")) == pytest.approx([scale_adc(2048)])
        assert r.pending == b"\x10"
        assert len(r.ingest(b"\x00")) == 1
        assert r.pending == b""

    def test_text_chunk_rejected(self):
        r = FrameReassembler(Framing.BINARY)
        with pytest.raises(TypeError):
            r.ingest("1.0\n")
