"""
Entry parser bridge tests.

ResponseCorrelator is tested on raw byte chunks (down to single bytes);
EntryParserBridge is tested end to end against a stand-in parse.py run with
the current interpreter.

Run: pytest tests/processing/test_entry_parser.py -v
"""

import json
import time

import pytest

from citydirs.processing.entry_parser import (
    BridgeState,
    EntryParserBridge,
    ResponseCorrelator,
)
from citydirs.utils.dataclasses import LineRecord
from citydirs.utils.errors import CorrelationError, ProcessStartError, ProcessWriteError


def make_record(text, n=0):
    return LineRecord(
        uuid="vol",
        year=1854,
        image_id="img",
        page_uuid="page",
        page_num=30,
        bbox=[0, n * 40, 900, n * 40 + 30],
        text=text,
    )


def reply(subject, location):
    return json.dumps({
        "subjects": [{"type": "primary", "value": subject}],
        "locations": [{"value": location}],
    }, ensure_ascii=False).encode('utf-8') + b'\n'


# ============================================================================
# Test ResponseCorrelator
# ============================================================================

class TestResponseCorrelator:
    """Test FIFO pairing of reply lines with pending records"""

    def test_single_byte_chunks(self):
        """Replies split into single bytes complete in submission order"""
        correlator = ResponseCorrelator()
        first, second = make_record("a", 0), make_record("b", 1)
        correlator.enqueue(first)
        correlator.enqueue(second)

        data = reply("Smith John", "12 Mott") + reply("Brown Ann", "4 Pearl")
        results = []
        for i in range(len(data)):
            results.extend(correlator.feed(data[i:i + 1]))

        assert [r.bbox for r in results] == [first.bbox, second.bbox]
        assert results[0].parsed.main_subject.value == "Smith John"
        assert results[1].parsed.locations[0].value == "4 Pearl"
        assert correlator.pending_count == 0

    def test_reply_split_across_chunks(self):
        correlator = ResponseCorrelator()
        correlator.enqueue(make_record("a"))

        data = reply("Smith John", "12 Mott")
        assert correlator.feed(data[:10]) == []
        results = correlator.feed(data[10:])

        assert len(results) == 1

    def test_several_replies_in_one_chunk(self):
        correlator = ResponseCorrelator()
        for n in range(3):
            correlator.enqueue(make_record(str(n), n))

        data = reply("A", "1 X") + reply("B", "2 Y") + reply("C", "3 Z")
        results = correlator.feed(data)

        assert [r.text for r in results] == ["0", "1", "2"]

    def test_multibyte_character_split(self):
        """A UTF-8 character split between chunks decodes once complete"""
        correlator = ResponseCorrelator()
        correlator.enqueue(make_record("a"))

        data = reply("Müller", "45½ Mott")
        split = data.index("ü".encode('utf-8')) + 1
        correlator.feed(data[:split])
        results = correlator.feed(data[split:])

        assert results[0].parsed.main_subject.value == "Müller"

    def test_finish_flushes_unterminated_reply(self):
        correlator = ResponseCorrelator()
        correlator.enqueue(make_record("a"))

        assert correlator.feed(reply("A", "1 X").rstrip(b'\n')) == []
        assert len(correlator.finish()) == 1

    def test_reply_without_pending_record(self):
        correlator = ResponseCorrelator()
        with pytest.raises(CorrelationError):
            correlator.feed(reply("A", "1 X"))

    def test_undecodable_reply(self):
        correlator = ResponseCorrelator()
        correlator.enqueue(make_record("a"))
        with pytest.raises(CorrelationError) as excinfo:
            correlator.feed(b"not json\n")
        assert excinfo.value.line == b"not json"

    def test_non_object_reply(self):
        correlator = ResponseCorrelator()
        correlator.enqueue(make_record("a"))
        with pytest.raises(CorrelationError):
            correlator.feed(b"[1, 2, 3]\n")


# ============================================================================
# Test EntryParserBridge
# ============================================================================

class TestBridgeStartup:
    """Test failures at construction"""

    def test_missing_script(self, tmp_path, python_executable):
        training = tmp_path / "training.txt"
        training.write_text("lines")
        with pytest.raises(ProcessStartError):
            EntryParserBridge(tmp_path, training, python=python_executable)

    def test_missing_training_data(self, fake_parser, tmp_path, python_executable):
        parser_dir, _ = fake_parser()
        with pytest.raises(ProcessStartError):
            EntryParserBridge(parser_dir, tmp_path / "missing.txt", python=python_executable)

    def test_missing_interpreter(self, fake_parser, tmp_path):
        parser_dir, training = fake_parser()
        with pytest.raises(ProcessStartError):
            EntryParserBridge(parser_dir, training, python=str(tmp_path / "no-python"))


class TestBridgeParse:
    """Test the bridge against the stand-in parser process"""

    TEXTS = [
        "Smith John 12 Mott",
        "Brown Ann 4½ Pearl",
        "Müller Hans 201 Bway",
    ]

    def run(self, fake_parser, python_executable, mode):
        parser_dir, training = fake_parser(mode)
        records = [make_record(text, n) for n, text in enumerate(self.TEXTS)]
        with EntryParserBridge(parser_dir, training, python=python_executable) as bridge:
            results = list(bridge.parse(records))
            state = bridge.state
        return records, results, state

    def test_results_in_submission_order(self, fake_parser, python_executable):
        records, results, state = self.run(fake_parser, python_executable, "lines")

        assert [r.bbox for r in results] == [r.bbox for r in records]
        assert [r.parsed.main_subject.value for r in results] == [
            "Smith John", "Brown Ann", "Müller Hans"
        ]
        assert results[1].parsed.locations[0].value == "4½ Pearl"
        assert state is BridgeState.CLOSED

    def test_byte_by_byte_output(self, fake_parser, python_executable):
        _, results, _ = self.run(fake_parser, python_executable, "bytes")
        assert [r.parsed.locations[0].value for r in results] == [
            "12 Mott", "4½ Pearl", "201 Bway"
        ]

    def test_last_reply_without_newline(self, fake_parser, python_executable):
        _, results, _ = self.run(fake_parser, python_executable, "no-newline")
        assert len(results) == 3
        assert results[-1].parsed.main_subject.value == "Müller Hans"

    def test_garbage_reply(self, fake_parser, python_executable):
        with pytest.raises(CorrelationError):
            self.run(fake_parser, python_executable, "garbage")

    def test_missing_replies(self, fake_parser, python_executable):
        with pytest.raises(CorrelationError):
            self.run(fake_parser, python_executable, "silent")

    def test_empty_input(self, fake_parser, python_executable):
        parser_dir, training = fake_parser("lines")
        with EntryParserBridge(parser_dir, training, python=python_executable) as bridge:
            assert list(bridge.parse([])) == []


class TestBridgeLifecycle:
    """Test writes after exit and idempotent close"""

    def test_write_after_exit(self, fake_parser, python_executable):
        parser_dir, training = fake_parser("exit")
        bridge = EntryParserBridge(parser_dir, training, python=python_executable)
        try:
            deadline = time.monotonic() + 10
            while bridge.returncode is None and time.monotonic() < deadline:
                time.sleep(0.05)

            record = make_record("Smith John 12 Mott")
            with pytest.raises(ProcessWriteError) as excinfo:
                bridge.submit(record)
            assert excinfo.value.record is record
        finally:
            bridge.close()

    def test_submit_after_close_input(self, fake_parser, python_executable):
        parser_dir, training = fake_parser("lines")
        with EntryParserBridge(parser_dir, training, python=python_executable) as bridge:
            bridge.close_input()
            assert bridge.state is BridgeState.DRAINING
            with pytest.raises(ProcessWriteError):
                bridge.submit(make_record("late"))

    def test_close_is_idempotent(self, fake_parser, python_executable):
        parser_dir, training = fake_parser("lines")
        bridge = EntryParserBridge(parser_dir, training, python=python_executable)
        bridge.close()
        bridge.close()
        assert bridge.state is BridgeState.CLOSED
        assert bridge.returncode is not None

    def test_results_consumed_once(self, fake_parser, python_executable):
        parser_dir, training = fake_parser("lines")
        with EntryParserBridge(parser_dir, training, python=python_executable) as bridge:
            bridge.close_input()
            list(bridge.results())
            with pytest.raises(RuntimeError):
                list(bridge.results())
