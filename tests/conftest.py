# -*- coding: utf-8 -*-
"""
Shared fixtures: sample volumes, hOCR pages, page archives and a stand-in
entry parser script.

Run: pytest tests/ -v
"""

import io
import sys
import tarfile
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from citydirs.utils.dataclasses import VolumeManifest


# Reads one line per request and answers with one JSON document per line.
# Words before the first number are the subject, the rest is the address.
# The training file holds the reply mode.
FAKE_PARSER = '''
import argparse
import json
import sys


def reply(line):
    words = line.split()
    split = next((i for i, word in enumerate(words) if word[0].isdigit()), len(words))
    subjects = [{"type": "primary", "value": " ".join(words[:split])}] if split else []
    locations = [{"value": " ".join(words[split:])}] if split < len(words) else []
    return json.dumps({"subjects": subjects, "locations": locations})


parser = argparse.ArgumentParser()
parser.add_argument("--training", required=True)
args = parser.parse_args()

with open(args.training, encoding="utf-8") as f:
    mode = f.read().strip()

out = sys.stdout.buffer

if mode == "exit":
    sys.exit(0)

if mode == "no-newline":
    replies = [reply(raw.decode("utf-8")) for raw in sys.stdin.buffer]
    out.write("\\n".join(replies).encode("utf-8"))
    out.flush()
    sys.exit(0)

for raw in sys.stdin.buffer:
    line = raw.decode("utf-8")
    if mode == "silent":
        continue
    if mode == "garbage":
        data = b"this is not json\\n"
    else:
        data = (reply(line) + "\\n").encode("utf-8")

    if mode == "bytes":
        for i in range(len(data)):
            out.write(data[i:i + 1])
            out.flush()
    else:
        out.write(data)
        out.flush()
'''


@pytest.fixture
def volume():
    """Two-column 1850/51 volume with pages 21-560."""
    return VolumeManifest(
        uuid="c6725860-7ce9-0134-fb06-00505686a51c",
        year=[1850, 1851],
        start_page=21,
        end_page=560,
        column_count=2,
    )


@pytest.fixture
def make_hocr():
    """Build an hOCR page from (bbox, text) lines."""

    def build(lines, width=2000, height=3000):
        parts = [
            '<html><body>',
            f'<div class="ocr_page" title="image page.jpg; bbox 0 0 {width} {height}">',
        ]
        for bbox, text in lines:
            words = ''.join(
                f'<span class="ocrx_word">{word}</span> ' for word in text.split()
            )
            title = 'bbox ' + ' '.join(str(c) for c in bbox)
            parts.append(f'<span class="ocr_line" title="{title}">{words}</span>')
        parts.append('</div></body></html>')
        return '\n'.join(parts)

    return build


@pytest.fixture
def make_archive():
    """Write a gzip-compressed tar with the given {member name: text} pages."""

    def build(path, members):
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with tarfile.open(path, 'w:gz') as tar:
            for name, text in members.items():
                data = text.encode('utf-8')
                info = tarfile.TarInfo(name=name)
                info.size = len(data)
                tar.addfile(info, io.BytesIO(data))
        return path

    return build


@pytest.fixture
def page_name():
    """Archive member name for a page number."""

    def build(page_num, image_id="56886389", page_uuid=None):
        page_uuid = page_uuid or f"page-{page_num:04d}"
        return f"hocr/{page_num}.{image_id}.{page_uuid}.processed.hocr"

    return build


@pytest.fixture
def fake_parser(tmp_path):
    """
    Install the stand-in parse.py; returns a factory mode -> (parser_dir, training_path).

    Modes: lines, bytes (one byte per write), no-newline, exit, garbage, silent.
    """
    parser_dir = tmp_path / "entry-parser"
    parser_dir.mkdir()
    (parser_dir / "parse.py").write_text(FAKE_PARSER, encoding='utf-8')

    def install(mode="lines"):
        training = parser_dir / f"training-{mode}.txt"
        training.write_text(mode, encoding='utf-8')
        return parser_dir, training

    return install


@pytest.fixture
def python_executable():
    return sys.executable
