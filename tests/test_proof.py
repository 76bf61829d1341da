import pytest

from conftest import GENESIS, fake_hash
from errors import VerificationError
from rng.canonical import canonical_proof, checksum
from services.blocks import BlockSet
from services.commit import Commitment
from services.proof import long_proof, parse_short_proof, short_proof, verify, verify_short_proof, with_ref
from services.sample import draw_all

SCENARIO_A = Commitment(provider="mp", tip=800_000, start=800_001, blocks=1, lo=1, hi=6, draws=1)
SHORT_A = "BBRNG v1|p=mp|t=800000|s=800001|k=1|r=1-6|n=1|x=[5]|crc=00F4"


def transcript(c: Commitment, hashes):
    bs = BlockSet(c.start, c.blocks)
    for i, h in enumerate(hashes):
        bs.fill(i, h)
    return bs, draw_all(bs, c.lo, c.hi, c.draws)


def test_short_proof_wire_format():
    assert short_proof(SCENARIO_A, [5]) == SHORT_A


def test_short_proof_verifies():
    assert verify_short_proof(SHORT_A)
    p = parse_short_proof(SHORT_A)
    assert (p.provider, p.tip, p.start, p.blocks, p.lo, p.hi, p.draws, p.nums) == \
        ("mp", 800_000, 800_001, 1, 1, 6, 1, [5])


@pytest.mark.parametrize("forged", ["x=[6]", "x=[4]", "x=[15]", "x=[]"])
def test_tampered_result_is_rejected(forged):
    assert verify_short_proof(SHORT_A.replace("x=[5]", forged)) is False


@pytest.mark.parametrize(
    "text",
    [
        "",
        "BBRNG v1",
        SHORT_A.replace("|k=1", ""),
        SHORT_A.replace("|crc=00F4", ""),
        SHORT_A.replace("r=1-6", "r=1to6"),
        SHORT_A.replace("x=[5]", "x=5"),
        SHORT_A.replace("x=[5]", "x=[five]"),
        SHORT_A.replace("t=800000", "t=8e5"),
        SHORT_A.replace("crc=00F4", "crc=00F"),
        SHORT_A.replace("BBRNG v1", "BBRNG v2"),
    ],
)
def test_malformed_proofs_are_rejected(text):
    assert verify_short_proof(text) is False
    with pytest.raises(VerificationError):
        parse_short_proof(text)


def test_verify_never_raises_on_none():
    assert verify(None) is False
    assert verify_short_proof(None) is False


def test_proof_found_inside_pasted_blob():
    blob = f'Results are in:\r\n"{SHORT_A}"\r\nthanks all'
    assert verify_short_proof(blob)
    assert verify_short_proof(f'"{SHORT_A}"')
    assert verify_short_proof(SHORT_A.replace("crc=00F4", "crc=00f4"))


def test_reference_does_not_break_verification():
    with_url = with_ref(SHORT_A, "https://example.org/note/1")
    assert with_url == SHORT_A + "|ref=https://example.org/note/1"
    assert verify_short_proof(with_url)
    assert with_ref(SHORT_A, "  ") == SHORT_A


def test_negative_range_round_trip():
    c = Commitment(provider="bs", tip=9, start=10, blocks=2, lo=-5, hi=-1, draws=3)
    text = short_proof(c, [-5, -3, -1])
    assert "|r=-5--1|" in text
    p = parse_short_proof(text)
    assert (p.lo, p.hi, p.nums) == (-5, -1, [-5, -3, -1])


def test_long_proof_single_block():
    bs, draws = transcript(SCENARIO_A, [GENESIS])
    text = long_proof(SCENARIO_A, bs.hashes, draws)
    lines = text.splitlines()
    assert lines[0] == "BBRNG v1"
    assert lines[1] == "prov=mp t=800000 start=800001 k=1 range=[1,6] n=1"
    assert f"  #800001 {GENESIS}" in lines
    assert not any(line.strip().startswith("dec=") for line in lines)
    assert "draw 0: result=5 iterations=1" in lines
    assert "  result = min + (X mod N) = 1 + (X mod 6) = 5" in lines
    assert lines[-2] == SHORT_A
    assert lines[-1] == "crc=00F4"
    assert verify(text)


def test_long_proof_lists_decimal_hashes_from_two_blocks():
    c = Commitment(provider="mp", tip=100, start=101, blocks=2, lo=1, hi=100, draws=3)
    bs, draws = transcript(c, [fake_hash(1), fake_hash(2)])
    text = long_proof(c, bs.hashes, draws)
    assert "    dec=1" in text.splitlines()
    assert "    dec=2" in text.splitlines()
    for d in draws:
        assert f"  X={d.accepted}" in text
    assert short_proof(c, [d.value for d in draws]) in text
    assert verify(with_ref(text, "https://example.org/n"))


def test_verify_dispatches_commitments():
    assert verify(SCENARIO_A.text)
    assert not verify(SCENARIO_A.text.replace("max=6", "max=7"))


def test_well_checksummed_proof_must_still_fit_its_parameters():
    assert verify_short_proof(short_proof(SCENARIO_A, [5, 3])) is False
    assert verify_short_proof(short_proof(SCENARIO_A, [9])) is False
    with pytest.raises(VerificationError, match="2 results for n=1"):
        parse_short_proof(short_proof(SCENARIO_A, [5, 3]))

    crc = checksum(canonical_proof("mp", 800_000, 800_005, 1, 1, 6, 1, [5]))
    detached = f"BBRNG v1|p=mp|t=800000|s=800005|k=1|r=1-6|n=1|x=[5]|crc={crc}"
    with pytest.raises(VerificationError, match="tip"):
        parse_short_proof(detached)


def test_long_proof_spells_out_the_hash_chain():
    bs, draws = transcript(SCENARIO_A, [GENESIS])
    lines = long_proof(SCENARIO_A, bs.hashes, draws).splitlines()
    assert "N=6 (max-min+1); accept X < 2^256 - (2^256 mod N)" in lines
    assert "X = SHA-256(H1 || ... || HK || draw:i); on rejection X = SHA-256(X || draw:i)" in lines
