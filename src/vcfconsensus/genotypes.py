"""Genotype token <-> single byte code table.

The codes are the ones the consensus file readers already expect; keep them
stable. Heterozygous base pairs are unordered: ``A/C`` and ``C/A`` encode to
the same byte and that byte decodes to the alphabetically ordered token.
IUPAC ambiguity letters (``M``, ``R``, ...) are aliases of the matching pair.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Tuple

from .errors import UnknownCode, UnknownGenotype

logger = logging.getLogger(__name__)

NULL_CALL = "null"
NO_CALL = "*"
INSERTION_PREFIX = "+/"
DELETION_PREFIX = "-/"

_BASES = ("A", "C", "G", "T")

# (canonical token, code); upper case first, then lower case.
_UPPER_CODES: Tuple[Tuple[str, int], ...] = (
    ("A", 0x01),
    ("C", 0x02),
    ("G", 0x03),
    ("T", 0x04),
    ("+", 0x05),
    ("-", 0x06),
    (NULL_CALL, 0x07),
    (NO_CALL, 0x08),
    ("A/C", 0x09),
    ("A/G", 0x0A),
    ("A/T", 0x0B),
    ("C/G", 0x0C),
    ("C/T", 0x0D),
    ("G/T", 0x0E),
    ("-/A", 0x0F),
    ("-/C", 0x10),
    ("-/G", 0x11),
    ("-/T", 0x12),
    ("+/A", 0x13),
    ("+/C", 0x14),
    ("+/G", 0x15),
    ("+/T", 0x16),
    ("N", 0x17),
)

_LOWER_CODES: Tuple[Tuple[str, int], ...] = (
    ("a", 0x1E),
    ("c", 0x1F),
    ("g", 0x20),
    ("t", 0x21),
    ("n", 0x22),
    ("a/c", 0x23),
    ("a/g", 0x24),
    ("a/t", 0x25),
    ("c/g", 0x26),
    ("c/t", 0x27),
    ("g/t", 0x28),
    ("-/a", 0x29),
    ("-/c", 0x2A),
    ("-/g", 0x2B),
    ("-/t", 0x2C),
    ("+/a", 0x2D),
    ("+/c", 0x2E),
    ("+/g", 0x2F),
    ("+/t", 0x30),
)

_IUPAC_PAIRS = {
    "M": "A/C",
    "R": "A/G",
    "W": "A/T",
    "S": "C/G",
    "Y": "C/T",
    "K": "G/T",
}


def _build_tables() -> Tuple[Dict[str, int], Dict[int, str]]:
    encode: Dict[str, int] = {}
    decode: Dict[int, str] = {}
    for token, code in _UPPER_CODES + _LOWER_CODES:
        encode[token] = code
        decode[code] = token

    # Reversed heterozygote spellings share the canonical code.
    for token, code in list(encode.items()):
        first, sep, second = token.partition("/")
        if sep and first.upper() in _BASES and second.upper() in _BASES:
            encode[f"{second}/{first}"] = code

    for letter, pair in _IUPAC_PAIRS.items():
        encode[letter] = encode[pair]
        encode[letter.lower()] = encode[pair.lower()]
    return encode, decode


class GenotypeCodec:
    """Immutable genotype table.

    Build one per conversion run (or share one across runs); nothing mutates
    it after construction.
    """

    def __init__(self) -> None:
        encode, decode = _build_tables()
        self._encode: Mapping[str, int] = MappingProxyType(encode)
        self._decode: Mapping[int, str] = MappingProxyType(decode)

    def __contains__(self, token: object) -> bool:
        return token in self._encode

    def __len__(self) -> int:
        return len(self._encode)

    def tokens(self) -> Iterator[str]:
        return iter(self._encode)

    def encode(self, token: str) -> int:
        try:
            return self._encode[token]
        except KeyError:
            raise UnknownGenotype(f"No genotype code for token {token!r}") from None

    def decode(self, code: int) -> str:
        try:
            return self._decode[code]
        except KeyError:
            raise UnknownCode(f"No genotype token for code {code:#04x}") from None

    def canonical(self, token: str) -> str:
        """Return the token ``decode(encode(token))`` yields."""
        return self.decode(self.encode(token))


def insertion_token(allele: str) -> str:
    return INSERTION_PREFIX + allele[0]


def deletion_token(allele: str) -> str:
    return DELETION_PREFIX + allele[0]
