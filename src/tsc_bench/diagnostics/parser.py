"""Parse the line-oriented summary printed by ``tsc --extendedDiagnostics``.

Each line looks like ``Label:   value[unit]``::

    Files:                         618
    Memory used:               285146K
    Check time:                  0.69s

Labels are mapped to snake_case metric names. Units are normalized: a
trailing ``s`` is seconds (float), ``ms`` is converted to seconds, ``K`` is
kilobytes (int) and a bare number is kept as-is. Lines that do not carry a
numeric value (compiler errors, banners, blank lines) are skipped.
"""

from __future__ import annotations

import re
from typing import Optional, Union

from ..logging_config import get_logger

logger = get_logger(__name__)

Number = Union[int, float]

# Labels printed by tsc 4.x/5.x. Anything else goes through normalize_key.
KNOWN_LABELS: dict[str, str] = {
    "Files": "files",
    "Lines of Library": "lines_of_library",
    "Lines of Definitions": "lines_of_definitions",
    "Lines of TypeScript": "lines_of_typescript",
    "Lines of JavaScript": "lines_of_javascript",
    "Lines of JSON": "lines_of_json",
    "Lines of Other": "lines_of_other",
    "Lines": "lines",
    "Identifiers": "identifiers",
    "Symbols": "symbols",
    "Types": "types",
    "Instantiations": "instantiations",
    "Memory used": "memory_used",
    "Assignability cache size": "assignability_cache_size",
    "Identity cache size": "identity_cache_size",
    "Subtype cache size": "subtype_cache_size",
    "Strict subtype cache size": "strict_subtype_cache_size",
    "Tracing time": "tracing_time",
    "I/O Read time": "io_read_time",
    "I/O Write time": "io_write_time",
    "Parse time": "parse_time",
    "ResolveModule time": "resolve_module_time",
    "ResolveTypeReference time": "resolve_type_reference_time",
    "ResolveLibrary time": "resolve_library_time",
    "Program time": "program_time",
    "Bind time": "bind_time",
    "Check time": "check_time",
    "printTime time": "print_time",
    "Emit time": "emit_time",
    "Dump types time": "dump_types_time",
    "Total time": "total_time",
}

_VALUE_RE = re.compile(r"^(?P<number>[-+]?\d+(?:\.\d+)?)\s*(?P<unit>ms|s|K|k)?$")
_CAMEL_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_NON_WORD_RE = re.compile(r"[^a-z0-9]+")


def normalize_key(label: str) -> str:
    """Map a diagnostic label to its metric name.

    >>> normalize_key("Check time")
    'check_time'
    >>> normalize_key("Lines of TypeScript")
    'lines_of_typescript'
    >>> normalize_key("Sub-type Cache Hits")
    'sub_type_cache_hits'
    """
    label = label.strip()
    known = KNOWN_LABELS.get(label)
    if known is not None:
        return known
    spaced = _CAMEL_RE.sub("_", label).lower()
    return _NON_WORD_RE.sub("_", spaced).strip("_")


def parse_value(text: str) -> Optional[Number]:
    """Parse ``"1.41s"``, ``"285146K"`` or ``"644"``; None when not numeric.

    >>> parse_value("1.41s")
    1.41
    >>> parse_value("285146K")
    285146
    >>> parse_value("250ms")
    0.25
    >>> parse_value("n/a") is None
    True
    """
    match = _VALUE_RE.match(text.strip())
    if match is None:
        return None

    number = match.group("number")
    unit = match.group("unit")

    if unit == "s":
        return float(number)
    if unit == "ms":
        return float(number) / 1000.0
    if unit in ("K", "k"):
        return int(float(number))
    if "." in number:
        return float(number)
    return int(number)


def parse_extended_diagnostics(stdout: str) -> dict[str, Number]:
    """Turn tsc's diagnostic summary into ``{metric_name: value}``.

    Lines are parsed independently; blank lines and lines without a colon
    or a numeric value are ignored. When a label repeats (``tsc -b`` prints
    one block per project) the last value wins.

    >>> parse_extended_diagnostics("Types: 644\\nTotal time: 1.41s\\n")
    {'types': 644, 'total_time': 1.41}
    """
    metrics: dict[str, Number] = {}
    skipped = 0

    for line in stdout.splitlines():
        if not line.strip():
            continue

        label, sep, raw_value = line.partition(":")
        if not sep or not label.strip():
            skipped += 1
            continue

        value = parse_value(raw_value)
        if value is None:
            skipped += 1
            continue

        metrics[normalize_key(label)] = value

    if skipped:
        logger.debug("Skipped %d non-metric diagnostic lines", skipped)

    return metrics
