import bz2
import io
import struct
from dataclasses import replace
from pathlib import Path

import numpy as np
import pytest

from vcfconsensus.consensus import (
    EXOME,
    GENOME,
    ConsensusCodec,
    ConsensusWriter,
    WritePath,
    iter_master_records,
    read_detail_payload,
    read_master_records,
)
from vcfconsensus.errors import CorruptConsensusFile, RecordEncodingError, UnknownGenotype
from vcfconsensus.genotypes import GenotypeCodec
from vcfconsensus.models import VariantRecord

BASE = VariantRecord(
    column=0,
    chrom="chr1",
    position=1000,
    genotype="A",
    reference_genotype="A",
    consensus_quality=1,
    snp_quality=2,
    mapping_quality=3,
    read_depth=4,
    read_bases="ACGT",
    read_qualities="IIII",
)


def make_writer(layout=GENOME, *, text=None):
    codec = ConsensusCodec(layout, GenotypeCodec())
    master, detail = io.BytesIO(), io.BytesIO()
    return ConsensusWriter(codec, master, detail, text=text), master, detail


def test_layout_sizes() -> None:
    assert GENOME.size == 23
    assert EXOME.size == 31
    assert GENOME.dtype.itemsize == 23
    assert EXOME.dtype.itemsize == 31


def test_genomic_record_bytes_are_big_endian() -> None:
    writer, master, detail = make_writer()
    assert writer.write_genomic(BASE) == -1
    expected = (
        b"\x01"
        + (1).to_bytes(4, "big")
        + (2).to_bytes(4, "big")
        + (3).to_bytes(2, "big")
        + (4).to_bytes(4, "big")
        + b"\xff" * 8
    )
    assert master.getvalue() == expected
    assert detail.getvalue() == b""


def test_genomic_stream_length_and_sentinel_pointers() -> None:
    writer, master, _ = make_writer()
    n = 17
    for i in range(n):
        writer.write_genomic(replace(BASE, position=1000 + i))
    assert len(master.getvalue()) == n * 23
    arr = read_master_records(master.getvalue(), GENOME)
    assert len(arr) == n
    assert (arr["detail_pointer"] == -1).all()
    assert writer.first_position == 1000
    assert writer.last_position == 1000 + n - 1


def test_no_reference_data_writes_no_detail() -> None:
    writer, master, detail = make_writer()
    rec = replace(BASE, genotype="null", has_no_reference_data=True)
    assert writer.write_no_reference_data(rec) == -1
    assert detail.getvalue() == b""
    assert read_master_records(master.getvalue(), GENOME)["genotype_code"][0] == 0x07


def test_detail_pointers_match_stream_length_before_append() -> None:
    writer, master, detail = make_writer()
    indel = replace(BASE, genotype="+/A", is_indel=True)
    snp = replace(BASE, genotype="T", reference_genotype="C T", is_snp=True, is_reverse_strand=True)

    lengths_before = []
    for rec, write in [(indel, writer.write_indel), (snp, writer.write_snp), (BASE, writer.write_genomic), (indel, writer.write_indel)]:
        lengths_before.append(len(detail.getvalue()))
        write(rec)

    pointers = [int(p) for p in read_master_records(master.getvalue(), GENOME)["detail_pointer"]]
    assert pointers == [lengths_before[0], lengths_before[1], -1, lengths_before[3]]
    assert pointers[0] < pointers[1] < pointers[3]
    assert writer.detail_size == len(detail.getvalue())

    data = detail.getvalue()
    assert read_detail_payload(data, pointers[0]) == "F\tACGT\tIIII"
    assert read_detail_payload(data, pointers[1]) == "R\tC T\tACGT\tIIII"
    assert data[: pointers[1]] == b"F\tACGT\tIIII|"


def test_exome_layout_prefixes_coordinate() -> None:
    writer, master, _ = make_writer(EXOME)
    writer.write_genomic(BASE)
    data = master.getvalue()
    assert len(data) == 31
    assert struct.unpack(">q", data[:8])[0] == 1000
    records = list(iter_master_records(data, EXOME))
    assert records[0].coordinate == 1000
    assert records[0].genotype_code == 1
    assert not records[0].has_detail


def test_encode_checks_every_field_before_writing() -> None:
    codec = ConsensusCodec(GENOME, GenotypeCodec())
    with pytest.raises(RecordEncodingError):
        codec.encode(replace(BASE, mapping_quality=40000), WritePath.GENOMIC)
    with pytest.raises(RecordEncodingError):
        codec.encode(replace(BASE, read_depth=2**31), WritePath.GENOMIC)
    with pytest.raises(UnknownGenotype):
        codec.encode(replace(BASE, genotype="GT"), WritePath.SNP)

    encoded = codec.encode(replace(BASE, is_indel=True, genotype="-/C"), WritePath.INDEL)
    assert encoded.payload == b"F\tACGT\tIIII|"
    assert encoded.genotype_code == 0x10


def test_text_mode_lines() -> None:
    text = io.StringIO()
    writer, _, _ = make_writer(text=text)
    writer.write_genomic(BASE)
    writer.write_indel(replace(BASE, genotype="*", is_no_call=True))
    lines = text.getvalue().splitlines()
    assert lines[0] == "1000\tA\t1\t2\t3\t4\t-1"
    assert lines[1] == "1000\t*\t1\t2\t3\t4\tF\tACGT\tIIII|"


def test_corrupt_streams_are_rejected() -> None:
    with pytest.raises(CorruptConsensusFile):
        read_master_records(b"\x00" * 24, GENOME)
    with pytest.raises(CorruptConsensusFile):
        read_detail_payload(b"F\tA\tI|", 10)
    with pytest.raises(CorruptConsensusFile):
        read_detail_payload(b"F\tA\tI", 0)


def test_reads_bz2_master_file(tmp_path: Path) -> None:
    writer, master, _ = make_writer()
    writer.write_genomic(BASE)
    path = tmp_path / "master-x.dat.bz2"
    path.write_bytes(bz2.compress(master.getvalue()))
    arr = read_master_records(path, GENOME)
    assert isinstance(arr, np.ndarray)
    assert int(arr["read_depth"][0]) == 4
