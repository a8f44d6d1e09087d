"""
Fabric Cut Identifiers
======================
Canonical form is `<prefix>-<NN>`: the warp code (or receipt prefix), a
hyphen, and the cut sequence zero-padded to at least two digits.

Operators also type or scan the QR sticker form `<prefix>/<N>`, and older
documents store either. Everything that compares identifiers goes
through canonicalize() first.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

SEPARATORS = "/-"
SEQUENCE_WIDTH = 2

# greedy prefix: the LAST separator splits off the sequence
_LAST_SEP_RE = re.compile(r"^(?P<prefix>.*\S)\s*[/\-]\s*(?P<seq>\d+)$")


@dataclass(frozen=True)
class CanonicalId:
    """Normalized identifier plus every stored form worth probing"""
    value: str
    candidates: Tuple[str, ...]
    prefix: Optional[str] = None
    sequence: Optional[int] = None

    @property
    def well_formed(self) -> bool:
        return self.sequence is not None

    def __str__(self) -> str:
        return self.value


def format_identifier(prefix: str, sequence: int) -> str:
    return f"{prefix}-{str(sequence).zfill(SEQUENCE_WIDTH)}"


def qr_payload(prefix: str, sequence: int) -> str:
    """Sticker form printed on the QR label, e.g. W1/01"""
    return f"{prefix}/{str(sequence).zfill(SEQUENCE_WIDTH)}"


def parse_identifier(raw: Optional[str]) -> Optional[Tuple[str, int]]:
    """Split an identifier into (prefix, sequence), or None when malformed."""
    if raw is None:
        return None
    text = str(raw).strip()
    match = _LAST_SEP_RE.match(text)
    if not match:
        return None
    prefix = match.group("prefix").strip()
    if not prefix or prefix[-1] in SEPARATORS:
        return None
    return prefix, int(match.group("seq"))


def prefix_of(raw: Optional[str]) -> Optional[str]:
    parsed = parse_identifier(raw)
    return parsed[0] if parsed else None


def canonicalize(raw: Optional[str]) -> CanonicalId:
    """
    Resolve an operator-entered identifier to its canonical form.

    Never raises. Malformed input comes back unchanged (stripped) as the
    only candidate so callers can still probe storage with it.

    Candidates are ordered by likelihood:
      1. canonical            W1/A-01
      2. all hyphens          W1-A-01
      3. slash form           W1/A/01
      4. raw input            W1/A/1 as typed
    """
    text = "" if raw is None else str(raw).strip()
    parsed = parse_identifier(text)
    if not parsed:
        return CanonicalId(value=text, candidates=(text,) if text else ())

    prefix, sequence = parsed
    canonical = format_identifier(prefix, sequence)
    hyphenated = format_identifier(prefix.replace("/", "-"), sequence)
    slashed = qr_payload(prefix, sequence)

    ordered = []
    for candidate in (canonical, hyphenated, slashed, text):
        if candidate and candidate not in ordered:
            ordered.append(candidate)

    return CanonicalId(value=canonical, candidates=tuple(ordered), prefix=prefix, sequence=sequence)


def canonical_key(raw: Optional[str]) -> str:
    """Shortcut for canonicalize(raw).value"""
    return canonicalize(raw).value


def next_available(prefix: str, taken: Iterable[str]) -> str:
    """
    Lowest-numbered `prefix-NN` not in `taken`.

    Pure function: no I/O. `taken` should hold canonical identifiers.
    """
    taken_set = taken if isinstance(taken, (set, frozenset)) else set(taken)
    sequence = 1
    candidate = format_identifier(prefix, sequence)
    while candidate in taken_set:
        sequence += 1
        candidate = format_identifier(prefix, sequence)
    return candidate


def order_numbering_prefix(order_form_number: Optional[str], receipt_prefix: str) -> Optional[str]:
    """
    Numbering prefix derived from a processing order form number.

    "PO/2024/00017" -> "WR-00017". Returns None when there is no form number.
    """
    if not order_form_number:
        return None
    part = str(order_form_number).strip().split("/")[-1].strip()
    if not part:
        return None
    return f"{receipt_prefix}-{part}"
