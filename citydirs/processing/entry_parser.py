# -*- coding: utf-8 -*-
"""
Bridge to the external city directory entry parser.

The entry parser is a long-lived Python process (parse.py plus its training
data) that reads one directory line per input line and writes one JSON
document per output line, in the same order:

    stdin:  "Smith John, carpenter, 123 Bway\n"
    stdout: '{"subjects": [{"type": "primary", "value": "Smith John", ...}],
              "locations": [{"value": "123 Bway"}]}\n'

Replies carry no request id. Each submitted record is queued, and every
completed reply line is paired with the head of that queue. Output arrives
from the pipe in arbitrary chunks, so partial lines are buffered until their
newline arrives.

Writes are flushed one at a time under a lock. When the parser stops reading,
the pipe fills and submit() blocks, which in turn stops the upstream pipeline.

States: IDLE -> RUNNING -> DRAINING (input closed) -> CLOSED (process done)

Example:
    with EntryParserBridge(parser_path, training_path) as bridge:
        for record in bridge.parse(line_records):
            writer.write(record)
"""
# Standard library
import json
import subprocess
from collections import deque
from enum import Enum
from pathlib import Path
from threading import Lock, Thread
from typing import Iterable, Iterator, List, Optional

# Local
from citydirs.utils.config import PARSER_PYTHON, PARSER_READ_CHUNK, PARSER_SCRIPT
from citydirs.utils.dataclasses import LineRecord, ParsedEntry
from citydirs.utils.errors import CorrelationError, ProcessStartError, ProcessWriteError
from citydirs.utils.logger import get_logger

logger = get_logger(__name__)

TERMINATE_TIMEOUT = 5  # seconds before kill()


class BridgeState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    CLOSED = "closed"


# =============================================================================
# RESPONSE CORRELATION
# =============================================================================

class ResponseCorrelator:
    """
    Pairs newline-delimited JSON replies with submitted records, in FIFO order.

    feed() accepts raw stdout bytes in chunks of any size; finish() flushes a
    trailing reply that was not newline-terminated.
    """

    def __init__(self):
        self.pending = deque()
        self.buffer = bytearray()
        self.lock = Lock()

    @property
    def pending_count(self) -> int:
        with self.lock:
            return len(self.pending)

    def enqueue(self, record: LineRecord):
        with self.lock:
            self.pending.append(record)

    def feed(self, chunk: bytes) -> List[LineRecord]:
        """
        Add output bytes and return the records completed by them.

        Raises:
            CorrelationError: On an undecodable reply or a reply with no pending record
        """
        self.buffer.extend(chunk)

        results = []
        while True:
            newline = self.buffer.find(b'\n')
            if newline < 0:
                break
            line = bytes(self.buffer[:newline])
            del self.buffer[:newline + 1]
            results.append(self._pair(line))

        return results

    def finish(self) -> List[LineRecord]:
        """Flush a buffered final reply that had no trailing newline."""
        line = bytes(self.buffer)
        self.buffer.clear()
        if not line.strip():
            return []
        return [self._pair(line)]

    def _pair(self, line: bytes) -> LineRecord:
        try:
            payload = json.loads(line.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CorrelationError(f"Cannot decode entry parser reply: {e}", line=line) from e

        with self.lock:
            if not self.pending:
                raise CorrelationError("Entry parser replied with no pending record", line=line)
            record = self.pending.popleft()

        try:
            parsed = ParsedEntry.from_dict(payload)
        except ValueError as e:
            raise CorrelationError(f"Malformed entry parser reply: {e}", line=line) from e

        return record.with_parsed(parsed)


# =============================================================================
# PROCESS BRIDGE
# =============================================================================

class EntryParserBridge:
    """
    Runs parse.py and correlates its replies with submitted line records.

    One writer (submit / parse's feeder thread) and one reader (results) at a
    time. Only one bridge should run per pipeline run.
    """

    def __init__(
        self,
        parser_path: Path,
        training_path: Path,
        python: str = PARSER_PYTHON,
        chunk_size: int = PARSER_READ_CHUNK,
    ):
        """
        Validate the parser installation and start the process.

        Args:
            parser_path: Directory containing parse.py
            training_path: Training data file passed as --training
            python: Python interpreter used to run parse.py
            chunk_size: Maximum bytes per stdout read

        Raises:
            ProcessStartError: If parse.py, the training data or the interpreter is missing
        """
        self.state = BridgeState.IDLE
        self.chunk_size = chunk_size

        script = Path(parser_path) / PARSER_SCRIPT
        if not script.exists():
            raise ProcessStartError(f"Can't find {PARSER_SCRIPT} in directory: {parser_path}")

        if not Path(training_path).exists():
            raise ProcessStartError(f"Training file does not exist: {training_path}")

        self.command = [python, str(script), '--training', str(training_path)]
        self.correlator = ResponseCorrelator()

        self.write_lock = Lock()
        self._input_closed = False
        self._released = False
        self._reading = False

        self._process = self._start()

    def _start(self) -> subprocess.Popen:
        try:
            process = subprocess.Popen(
                self.command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
            )
        except OSError as e:
            raise ProcessStartError(f"Cannot start entry parser {self.command[0]}: {e}") from e

        self.state = BridgeState.RUNNING
        logger.info(f"Started entry parser (pid {process.pid}): {' '.join(self.command)}")
        return process

    @property
    def returncode(self) -> Optional[int]:
        return self._process.poll()

    # -------------------------------------------------------------------------
    # Writing
    # -------------------------------------------------------------------------

    def submit(self, record: LineRecord):
        """
        Queue a record and send its text to the parser.

        Returns once the line has been flushed to the parser's stdin.

        Raises:
            ProcessWriteError: If input is closed or the parser has exited
        """
        with self.write_lock:
            if self.state is not BridgeState.RUNNING:
                raise ProcessWriteError(
                    f"Unable to parse, entry parser is {self.state.value}", record=record
                )

            returncode = self._process.poll()
            if returncode is not None:
                raise ProcessWriteError(
                    f"Unable to parse, entry parser exited with code {returncode}", record=record
                )

            self.correlator.enqueue(record)

            # One request per line; embedded newlines would desynchronize replies
            text = ' '.join(record.text.splitlines())
            try:
                self._process.stdin.write(f"{text}\n".encode('utf-8'))
                self._process.stdin.flush()
            except (OSError, ValueError) as e:
                raise ProcessWriteError(
                    f"Unable to parse, cannot write data to entry parser: {e}", record=record
                ) from e

    def close_input(self):
        """Close the parser's stdin (once); it exits after answering what it has."""
        with self.write_lock:
            if self._input_closed:
                return
            self._input_closed = True

            if self.state is BridgeState.RUNNING:
                self.state = BridgeState.DRAINING

            try:
                self._process.stdin.close()
            except OSError as e:
                logger.debug(f"Entry parser stdin already broken on close: {e}")

    # -------------------------------------------------------------------------
    # Reading
    # -------------------------------------------------------------------------

    def results(self) -> Iterator[LineRecord]:
        """
        Yield parsed records in submission order until the parser exits.

        Raises:
            CorrelationError: On protocol desynchronization, including records
                left unanswered when the parser exits
        """
        if self._reading:
            raise RuntimeError("Entry parser results can only be consumed once")
        self._reading = True

        stdout = self._process.stdout
        while True:
            chunk = stdout.read1(self.chunk_size)
            if not chunk:
                break
            for record in self.correlator.feed(chunk):
                yield record

        returncode = self._process.wait()

        for record in self.correlator.finish():
            yield record

        self.state = BridgeState.CLOSED

        unanswered = self.correlator.pending_count
        if unanswered:
            raise CorrelationError(
                f"Entry parser exited (code {returncode}) leaving {unanswered} records unanswered"
            )

        logger.info(f"Entry parser finished (code {returncode})")

    def parse(self, records: Iterable[LineRecord]) -> Iterator[LineRecord]:
        """
        Submit records from a feeder thread while yielding parsed results.

        The records iterable is consumed in the feeder thread; an error raised
        while producing or writing records is re-raised here after the parser
        has answered what it received.
        """
        feeder_errors: List[Exception] = []

        def feed():
            try:
                for record in records:
                    self.submit(record)
            except Exception as e:
                feeder_errors.append(e)
            finally:
                self.close_input()

        feeder = Thread(target=feed, name='entry-parser-feeder', daemon=True)
        feeder.start()

        try:
            yield from self.results()
        except CorrelationError as e:
            # A writer failure that came first (e.g. a record never sent) is the cause
            earlier_errors = list(feeder_errors)
            self.close()
            feeder.join()
            if earlier_errors:
                raise earlier_errors[0] from e
            raise
        finally:
            if feeder.is_alive():
                self.close()
            feeder.join()

        if feeder_errors:
            raise feeder_errors[0]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self):
        """Stop the parser if still running and release its pipes (idempotent)."""
        if self._released:
            return
        self._released = True

        process = self._process
        if process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=TERMINATE_TIMEOUT)
            except subprocess.TimeoutExpired:
                logger.warning(f"Entry parser (pid {process.pid}) did not terminate, killing")
                process.kill()
                process.wait()

        self.close_input()
        if process.stdout:
            process.stdout.close()

        self.state = BridgeState.CLOSED

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
