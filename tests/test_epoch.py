import pytest

from ethcore.constants import ETC_EPOCH_LENGTH
from ethcore.epoch import epoch_from_block, epoch_from_seed, seed_hash, validate_epoch
from ethcore.exceptions import EpochResolutionError, InvalidWorkError
from ethcore.keccak import keccak_256


def test_seed_hash_chain():
    assert seed_hash(0) == b"\x00" * 32
    assert seed_hash(1).hex() == "290decd9548b62a8d60345a988386fc84ba6bc95484008f6362f93160ef3e563"
    assert seed_hash(5) == keccak_256(seed_hash(4))


def test_epoch_from_seed_accepts_bytes_and_hex():
    assert epoch_from_seed(seed_hash(0)) == 0
    assert epoch_from_seed(seed_hash(7)) == 7
    assert epoch_from_seed("0x" + seed_hash(12).hex()) == 12
    assert epoch_from_seed(seed_hash(3).hex().upper()) == 3


def test_epoch_from_seed_not_found():
    with pytest.raises(EpochResolutionError):
        epoch_from_seed(b"\x11" * 32, max_epoch=10)


def test_epoch_from_seed_respects_max_epoch():
    seed = seed_hash(20)
    with pytest.raises(EpochResolutionError):
        epoch_from_seed(seed, max_epoch=10)
    assert epoch_from_seed(seed, max_epoch=20) == 20


def test_epoch_from_seed_bad_hex():
    with pytest.raises(InvalidWorkError):
        epoch_from_seed("0xnothex")


def test_epoch_from_block():
    assert epoch_from_block(0) == 0
    assert epoch_from_block(29999) == 0
    assert epoch_from_block(30000) == 1
    assert epoch_from_block(60000, ETC_EPOCH_LENGTH) == 1
    assert validate_epoch(2, 65000)
    assert not validate_epoch(1, 65000)
