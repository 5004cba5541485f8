#!/usr/bin/env python3
#
# Generate TeX definition files for Unicode casing and line-break classes.
# Reads UnicodeData.txt, EastAsianWidth.txt and LineBreak.txt and writes
# unicode-casing.def and unicode-classes.def. Missing files can be fetched
# from .../<version>/ucd/<name> on request.
#
# Copyright 2015 The TeX Users Group.
#
# Licensed under the Apache License, Version 2.0 <LICENSE-APACHE or
# http://www.apache.org/licenses/LICENSE-2.0> or the MIT license <LICENSE-MIT
# or http://opensource.org/licenses/MIT>, at your option.
#
# Unicode® data: https://www.unicode.org/license.txt

import argparse
import datetime
import hashlib
import os
import re
import sys
import urllib.request
from typing import Callable, Iterable, Iterator, NamedTuple

RELEASE_VERSION = "0.1"
RELEASE_DATE = "2015-11-25"
UNICODE_VERSION = "16.0.0"

EAST_ASIAN_DATA = "EastAsianWidth.txt"
LINE_BREAK_DATA = "LineBreak.txt"
UNICODE_DATA = "UnicodeData.txt"
DATA_FILES = [EAST_ASIAN_DATA, LINE_BREAK_DATA, UNICODE_DATA]

UNICODE_CASING = "unicode-casing.def"
UNICODE_CLASSES = "unicode-classes.def"

WIDE_CLASSES = frozenset(["F", "H", "W"])
LINE_BREAK_CLASSES = frozenset(["ID", "OP", "CL", "EX", "IS", "NS", "CM"])

NEWLINES = {"lf": "\n", "crlf": "\r\n"}

Codepoint = int


class Settings(NamedTuple):
    script: str
    generated: str
    newline: str = "\n"
    release_version: str = RELEASE_VERSION
    release_date: str = RELEASE_DATE
    comment: str = "%% "


def native_newline() -> str:
    return "\r\n" if os.name == "nt" else "\n"


def make_settings(script: str, newline: str = "native") -> Settings:
    return Settings(
        script=script,
        generated=datetime.date.today().isoformat(),
        newline=NEWLINES.get(newline) or native_newline(),
    )


def format_codepoint(cp: Codepoint) -> str:
    return f"{cp:X}"


_HEX_RE = re.compile(r"[0-9A-Fa-f]+")


def _hex(field: str) -> Codepoint | None:
    # int() alone would also take signs, 0x prefixes and underscores
    if not _HEX_RE.fullmatch(field):
        return None
    return int(field, 16)


class CaseRecord(NamedTuple):
    codepoint: Codepoint
    name: str
    category: str
    upper: Codepoint | None
    lower: Codepoint | None


class RangeRecord(NamedTuple):
    first: Codepoint
    last: Codepoint
    prop: str


def parse_case_record(line: str) -> CaseRecord | None:
    """Parse one UnicodeData.txt line, or return None if it has the wrong shape."""
    fields = line.rstrip("\r\n").split(";")
    if len(fields) < 15:
        return None
    code, name, category = fields[0], fields[1], fields[2]
    if not code or not name or not category:
        return None
    codepoint = _hex(code)
    if codepoint is None:
        return None
    upper = lower = None
    if fields[12]:
        if (upper := _hex(fields[12])) is None:
            return None
    if fields[13]:
        if (lower := _hex(fields[13])) is None:
            return None
    return CaseRecord(codepoint, name, category, upper, lower)


_RANGE_RE = re.compile(r"^([0-9A-Fa-f]+)(?:\.\.([0-9A-Fa-f]+))?$")


def parse_range_record(line: str) -> RangeRecord | None:
    """Parse a `first..last;class` line as used by EastAsianWidth.txt and LineBreak.txt."""
    data = line.split("#", 1)[0]
    if ";" not in data:
        return None
    span, prop = data.split(";", 1)
    m = _RANGE_RE.match(span.strip())
    tokens = prop.split()
    if not m or not tokens:
        return None
    first = int(m.group(1), 16)
    # single code points are written without the `..last` part
    last = int(m.group(2), 16) if m.group(2) else first
    return RangeRecord(first, last, tokens[0])


def read_records(path: str, parse: Callable[[str], CaseRecord | RangeRecord | None]) -> Iterator:
    with open(path, encoding="utf-8", errors="replace") as data:
        for line in data:
            if line.startswith("#") or not line.strip():
                continue
            if (record := parse(line)) is not None:
                yield record


def classify(record: CaseRecord) -> str | None:
    if record.category.startswith("L"):
        return "L"
    if record.category.startswith("M"):
        return "M"
    # cased non-letters have at least one mapping
    if record.upper is not None or record.lower is not None:
        return "C"
    return None


def case_directive(
    tag: str, cp: Codepoint, upper: Codepoint | None = None, lower: Codepoint | None = None
) -> str:
    if (upper is None and lower is None) or (upper == cp and lower == cp):
        return f"\\{tag.lower()} {format_codepoint(cp)}"
    return "\\{} {} {} {}".format(
        tag,
        format_codepoint(cp),
        format_codepoint(cp if upper is None else upper),
        format_codepoint(cp if lower is None else lower),
    )


class OpenRange(NamedTuple):
    start: Codepoint


def casing_directives(records: Iterable[CaseRecord]) -> Iterator[str]:
    open_range: OpenRange | None = None
    for record in records:
        if open_range is not None:
            # whatever follows a First record closes the range
            if record.category.startswith("L"):
                for cp in range(open_range.start, record.codepoint + 1):
                    yield f"\\l {format_codepoint(cp)}"
            open_range = None
        elif record.name.endswith("First>"):
            open_range = OpenRange(record.codepoint)
        else:
            tag = classify(record)
            if tag == "M":
                yield case_directive(tag, record.codepoint)
            elif tag is not None:
                yield case_directive(tag, record.codepoint, record.upper, record.lower)


def build_width_lookup(records: Iterable[RangeRecord]) -> dict[Codepoint, str]:
    lookup: dict[Codepoint, str] = {}
    for record in records:
        if record.prop in WIDE_CLASSES:
            for cp in range(record.first, record.last + 1):
                lookup[cp] = record.prop
    return lookup


def class_directives(records: Iterable[RangeRecord], width_lookup: dict[Codepoint, str]) -> Iterator[str]:
    for record in records:
        if record.prop not in LINE_BREAK_CLASSES:
            continue
        if record.prop == "ID":
            yield f"\\ID {format_codepoint(record.first)} {format_codepoint(record.last)}"
            continue
        for cp in range(record.first, record.last + 1):
            if cp in width_lookup:
                yield f"\\{record.prop} {format_codepoint(cp)}"


def md5_digest(data: bytes) -> str:
    return hashlib.md5(data).hexdigest().upper()


_VERSION_RE = re.compile(r"([0-9]+\.[0-9]+\.[0-9]+)\.txt$")
_DATE_RE = re.compile(r": ([^,]*, [^ ]*)")


def read_version_date(path: str) -> tuple[str, str] | None:
    """Return (version, date) from the leading comment lines of a UCD file, if any."""
    with open(path, encoding="utf-8", errors="replace") as data:
        first = data.readline().rstrip()
        second = data.readline().rstrip()
    if not first.startswith("#"):
        return None
    version = _VERSION_RE.search(first)
    date = _DATE_RE.search(second)
    if not version or not date:
        return None
    return (version.group(1), date.group(1))


def make_header(
    target: str,
    sources: list[str],
    settings: Settings,
    digest: Callable[[bytes], str] = md5_digest,
) -> str:
    plural = len(sources) != 1
    lines = [
        f'This is the file "{target}",',
        f'generated using the script "{settings.script}"',
        f"(version {settings.release_version} dated {settings.release_date}).",
        "",
        "The data here are derived from the file" + ("s" if plural else ""),
    ]
    for source in sources:
        lines.append(f"- {os.path.basename(source)}")
        if found := read_version_date(source):
            lines.append(f"  Version {found[0]} dated {found[1]}")
        with open(source, "rb") as data:
            lines.append(f"  MD5 sum {digest(data.read())}")
    lines += [
        ("which are" if plural else "which is") + " maintained by the Unicode Consortium.",
        "",
        f"Generated on {settings.generated}",
        "",
        "Copyright 2015 The TeX Users Group",
        "",
    ]
    return "".join(f"{settings.comment}{line}{settings.newline}" for line in lines)


def render(header: str, directives: Iterable[str], newline: str) -> str:
    return header + "".join(d + newline for d in directives)


def write_output(path: str, text: str):
    # encode first so a non-ASCII header leaves no partial file behind
    data = text.encode("ascii")
    with open(path, "wb") as f:
        f.write(data)


def missing_data_files(data_dir: str) -> list[str]:
    return [name for name in DATA_FILES if not os.path.isfile(os.path.join(data_dir, name))]


def fetch_data_file(name: str, data_dir: str):
    """Fetch Public/<version>/ucd/<name> into data_dir."""
    url = f"https://www.unicode.org/Public/{UNICODE_VERSION}/ucd/{name}"
    urllib.request.urlretrieve(url, os.path.join(data_dir, name))


def make_casing(settings: Settings, data_dir: str, output_dir: str) -> str:
    source = os.path.join(data_dir, UNICODE_DATA)
    header = make_header(UNICODE_CASING, [source], settings)
    directives = casing_directives(read_records(source, parse_case_record))
    path = os.path.join(output_dir, UNICODE_CASING)
    write_output(path, render(header, directives, settings.newline))
    return path


def make_classes(settings: Settings, data_dir: str, output_dir: str) -> str:
    east_asian = os.path.join(data_dir, EAST_ASIAN_DATA)
    line_break = os.path.join(data_dir, LINE_BREAK_DATA)
    width_lookup = build_width_lookup(read_records(east_asian, parse_range_record))
    header = make_header(UNICODE_CLASSES, [east_asian, line_break], settings)
    directives = class_directives(read_records(line_break, parse_range_record), width_lookup)
    path = os.path.join(output_dir, UNICODE_CLASSES)
    write_output(path, render(header, directives, settings.newline))
    return path


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Generate TeX definition files from Unicode data tables.")
    ap.add_argument("--data-dir", default=".", help="directory holding the UCD text files")
    ap.add_argument("--output-dir", default=".", help="directory for the generated .def files")
    ap.add_argument("--newline", choices=["native", "lf", "crlf"], default="native")
    ap.add_argument("--download", action="store_true", help="fetch missing UCD files from unicode.org")
    ap.add_argument("-q", "--quiet", action="store_true", help="suppress progress output")
    args = ap.parse_args(argv)

    log = (lambda msg: None) if args.quiet else print

    if args.download and (to_fetch := missing_data_files(args.data_dir)):
        log("\nDownloading Unicode data files from unicode.org...")
        log("By continuing, you agree to the Unicode License:")
        log("  https://www.unicode.org/license.txt\n")
        for name in to_fetch:
            try:
                fetch_data_file(name, args.data_dir)
            except Exception as e:
                sys.stderr.write(f"Error downloading {name}: {e}\n")
                return 1

    missing = missing_data_files(args.data_dir)
    for name in missing:
        sys.stderr.write(f'Cannot find data file "{name}"!\n')
    if missing:
        return 1

    settings = make_settings(os.path.basename(sys.argv[0]) or "unicode_data_prep.py", args.newline)
    try:
        log(f"Generating {UNICODE_CASING}...")
        casing = make_casing(settings, args.data_dir, args.output_dir)
        log(f"Generating {UNICODE_CLASSES}...")
        classes = make_classes(settings, args.data_dir, args.output_dir)
    except (OSError, UnicodeError) as e:
        sys.stderr.write(f"Error: {e}\n")
        return 1

    log(f"Done. Generated {casing} and {classes}.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
