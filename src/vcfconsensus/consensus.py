"""Master/detail binary encoding.

Master records are fixed width, big-endian:

=========  ======  ===============================================
field      type    notes
=========  ======  ===============================================
coordinate int64   exome layout only, leading field
genotype   uint8   GenotypeCodec byte
cq         int32   consensus quality
snpq       int32   SNP quality
mapq       int16   mapping quality
depth      int32   read depth
pointer    int64   byte offset into the detail stream, or -1
=========  ======  ===============================================

Detail payloads are ASCII text terminated by ``|``. The pointer stored in a
master record is the detail stream length just before its payload was
appended. The streams are usually compressed, so the length is tracked by
counting bytes rather than asking the stream.
"""

from __future__ import annotations

import bz2
import logging
import struct
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, TextIO, Tuple, Union

import numpy as np

from .errors import CorruptConsensusFile, RecordEncodingError
from .genotypes import GenotypeCodec
from .models import MasterRecord, VariantRecord

logger = logging.getLogger(__name__)

NO_DETAIL = -1
PAYLOAD_TERMINATOR = b"|"
FORWARD_STRAND = "F"
REVERSE_STRAND = "R"

_GENOME_FIELDS = [
    ("genotype_code", "u1"),
    ("consensus_quality", ">i4"),
    ("snp_quality", ">i4"),
    ("mapping_quality", ">i2"),
    ("read_depth", ">i4"),
    ("detail_pointer", ">i8"),
]


@dataclass(frozen=True)
class MasterLayout:
    """Byte layout of one flavour of master record.

    Attributes
    ----------
    name:
        ``"genome"`` or ``"exome"``.
    record:
        Compiled ``struct`` format for one record.
    has_coordinate:
        Whether each record starts with its 64-bit genomic coordinate.
    """

    name: str
    record: struct.Struct
    has_coordinate: bool

    @property
    def size(self) -> int:
        return self.record.size

    @property
    def dtype(self) -> np.dtype:
        fields = list(_GENOME_FIELDS)
        if self.has_coordinate:
            fields.insert(0, ("coordinate", ">i8"))
        return np.dtype(fields)


GENOME = MasterLayout(name="genome", record=struct.Struct(">Biihiq"), has_coordinate=False)
EXOME = MasterLayout(name="exome", record=struct.Struct(">qBiihiq"), has_coordinate=True)
LAYOUTS = {GENOME.name: GENOME, EXOME.name: EXOME}


class WritePath(str, Enum):
    GENOMIC = "genomic"
    NO_REFERENCE_DATA = "no_reference_data"
    INDEL = "indel"
    SNP = "snp"

    @property
    def has_detail(self) -> bool:
        return self in (WritePath.INDEL, WritePath.SNP)


@dataclass(frozen=True)
class EncodedRecord:
    """A record whose every field has been checked against the layout.

    Only the detail pointer is left open; it is fixed when the record is
    appended to a particular stream pair.
    """

    path: WritePath
    record: VariantRecord
    genotype_code: int
    payload: Optional[bytes]


class ConsensusCodec:
    """Turns VariantRecords into master bytes and detail payloads."""

    def __init__(self, layout: MasterLayout, genotypes: GenotypeCodec) -> None:
        self.layout = layout
        self.genotypes = genotypes

    def _fields(self, record: VariantRecord, genotype_code: int, pointer: int) -> Tuple[int, ...]:
        fields: Tuple[int, ...] = (
            genotype_code,
            record.consensus_quality,
            record.snp_quality,
            record.mapping_quality,
            record.read_depth,
            pointer,
        )
        if self.layout.has_coordinate:
            fields = (record.position,) + fields
        return fields

    def pack(self, encoded: EncodedRecord, pointer: int) -> bytes:
        try:
            return self.layout.record.pack(*self._fields(encoded.record, encoded.genotype_code, pointer))
        except struct.error as e:
            raise RecordEncodingError(
                f"{encoded.record.chrom}:{encoded.record.position} does not fit the {self.layout.name} layout: {e}"
            ) from None

    @staticmethod
    def detail_payload(record: VariantRecord, *, include_reference: bool) -> bytes:
        strand = REVERSE_STRAND if record.is_reverse_strand else FORWARD_STRAND
        parts = [strand]
        if include_reference:
            parts.append(record.reference_genotype)
        parts.extend([record.read_bases, record.read_qualities])
        text = "\t".join(parts) + PAYLOAD_TERMINATOR.decode("ascii")
        try:
            return text.encode("ascii")
        except UnicodeEncodeError:
            raise RecordEncodingError(f"Non-ASCII detail payload at {record.chrom}:{record.position}") from None

    def encode(self, record: VariantRecord, path: WritePath) -> EncodedRecord:
        """Validate ``record`` for ``path`` without writing anything."""
        code = self.genotypes.encode(record.genotype)
        payload = None
        if path.has_detail:
            payload = self.detail_payload(record, include_reference=path is WritePath.SNP)
        encoded = EncodedRecord(path=path, record=record, genotype_code=code, payload=payload)
        # Range-check every numeric field now so a later write cannot fail.
        self.pack(encoded, NO_DETAIL)
        return encoded


class ConsensusWriter:
    """Append-only writer for one master/detail stream pair.

    Attributes
    ----------
    master_size, detail_size:
        Bytes appended so far to each stream.
    records:
        Master records written.
    first_position, last_position:
        Coordinates of the first and last record written, or None.
    """

    def __init__(
        self,
        codec: ConsensusCodec,
        master: BinaryIO,
        detail: BinaryIO,
        *,
        text: Optional[TextIO] = None,
    ) -> None:
        self.codec = codec
        self.master = master
        self.detail = detail
        self.text = text
        self.master_size = 0
        self.detail_size = 0
        self.records = 0
        self.first_position: Optional[int] = None
        self.last_position: Optional[int] = None

    def write(self, encoded: EncodedRecord) -> int:
        """Append one encoded record; return its detail pointer."""
        pointer = self.detail_size if encoded.payload is not None else NO_DETAIL
        data = self.codec.pack(encoded, pointer)
        self.master.write(data)
        self.master_size += len(data)
        if encoded.payload is not None:
            self.detail.write(encoded.payload)
            self.detail_size += len(encoded.payload)

        record = encoded.record
        if self.text is not None:
            tail = encoded.payload.decode("ascii") if encoded.payload is not None else str(NO_DETAIL)
            self.text.write(
                "\t".join(
                    str(v)
                    for v in (
                        record.position,
                        record.genotype,
                        record.consensus_quality,
                        record.snp_quality,
                        record.mapping_quality,
                        record.read_depth,
                        tail,
                    )
                )
                + "\n"
            )

        if self.first_position is None:
            self.first_position = record.position
        self.last_position = record.position
        self.records += 1
        return pointer

    def write_genomic(self, record: VariantRecord) -> int:
        return self.write(self.codec.encode(record, WritePath.GENOMIC))

    def write_no_reference_data(self, record: VariantRecord) -> int:
        return self.write(self.codec.encode(record, WritePath.NO_REFERENCE_DATA))

    def write_indel(self, record: VariantRecord) -> int:
        return self.write(self.codec.encode(record, WritePath.INDEL))

    def write_snp(self, record: VariantRecord) -> int:
        return self.write(self.codec.encode(record, WritePath.SNP))


# -----------------
# Reading back
# -----------------

Source = Union[str, Path, bytes]


def read_stream_bytes(source: Source) -> bytes:
    """Return raw bytes of a master/detail stream (``.bz2`` paths are decompressed)."""
    if isinstance(source, (bytes, bytearray)):
        return bytes(source)
    p = Path(source)
    if p.suffix == ".bz2":
        with bz2.open(p, "rb") as fh:
            return fh.read()
    return p.read_bytes()


def read_master_records(source: Source, layout: MasterLayout) -> np.ndarray:
    """Decode a master stream into a structured array with the layout's dtype."""
    data = read_stream_bytes(source)
    if len(data) % layout.size:
        raise CorruptConsensusFile(
            f"Master stream of {len(data)} bytes is not a multiple of the {layout.size}-byte {layout.name} record"
        )
    return np.frombuffer(data, dtype=layout.dtype)


def iter_master_records(source: Source, layout: MasterLayout) -> Iterator[MasterRecord]:
    arr = read_master_records(source, layout)
    for row in arr:
        yield MasterRecord(
            genotype_code=int(row["genotype_code"]),
            consensus_quality=int(row["consensus_quality"]),
            snp_quality=int(row["snp_quality"]),
            mapping_quality=int(row["mapping_quality"]),
            read_depth=int(row["read_depth"]),
            detail_pointer=int(row["detail_pointer"]),
            coordinate=int(row["coordinate"]) if layout.has_coordinate else -1,
        )


def read_detail_payload(detail: bytes, offset: int) -> str:
    """Return the payload starting at ``offset``, without its terminator."""
    if offset < 0 or offset >= len(detail):
        raise CorruptConsensusFile(f"Detail pointer {offset} outside a {len(detail)}-byte detail stream")
    end = detail.find(PAYLOAD_TERMINATOR, offset)
    if end < 0:
        raise CorruptConsensusFile(f"Detail payload at {offset} has no terminator")
    return detail[offset:end].decode("ascii")
