import pytest

from vcfconsensus.errors import UnknownCode, UnknownGenotype
from vcfconsensus.genotypes import GenotypeCodec, deletion_token, insertion_token


def test_known_codes_are_stable() -> None:
    codec = GenotypeCodec()
    assert codec.encode("A") == 0x01
    assert codec.encode("T") == 0x04
    assert codec.encode("null") == 0x07
    assert codec.encode("*") == 0x08
    assert codec.encode("A/C") == 0x09
    assert codec.encode("G/T") == 0x0E
    assert codec.encode("-/A") == 0x0F
    assert codec.encode("+/T") == 0x16
    assert codec.encode("N") == 0x17
    assert codec.encode("a") == 0x1E
    assert codec.encode("+/t") == 0x30


def test_canonical_tokens_round_trip() -> None:
    codec = GenotypeCodec()
    for token in ["A", "C", "G", "T", "a", "t", "+", "-", "null", "*", "N", "n", "A/G", "c/t", "-/C", "+/g"]:
        assert codec.decode(codec.encode(token)) == token


def test_every_accepted_token_decodes_to_its_canonical_form() -> None:
    codec = GenotypeCodec()
    for token in codec.tokens():
        canonical = codec.canonical(token)
        assert codec.encode(canonical) == codec.encode(token)
        assert codec.decode(codec.encode(canonical)) == canonical


def test_heterozygote_order_is_canonicalized() -> None:
    codec = GenotypeCodec()
    assert codec.encode("A/C") == codec.encode("C/A")
    assert codec.decode(codec.encode("C/A")) == "A/C"
    assert codec.decode(codec.encode("T/G")) == "G/T"
    assert codec.decode(codec.encode("g/a")) == "a/g"


def test_iupac_letters_alias_heterozygotes() -> None:
    codec = GenotypeCodec()
    assert codec.decode(codec.encode("M")) == "A/C"
    assert codec.encode("R") == codec.encode("A/G")
    assert codec.encode("k") == codec.encode("g/t")


def test_unknown_token_and_code() -> None:
    codec = GenotypeCodec()
    assert "AC" not in codec
    with pytest.raises(UnknownGenotype):
        codec.encode("AC")
    with pytest.raises(KeyError):
        codec.encode("<DEL>")
    with pytest.raises(UnknownCode):
        codec.decode(0x00)
    with pytest.raises(UnknownCode):
        codec.decode(0x18)


def test_indel_tokens_use_first_allele_base() -> None:
    assert insertion_token("GA") == "+/G"
    assert deletion_token("T") == "-/T"
    codec = GenotypeCodec()
    assert codec.encode(insertion_token("AT")) == 0x13
