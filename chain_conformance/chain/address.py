import hashlib
import re

import eth_utils
from Crypto.Hash import RIPEMD160
from eth_keys import keys

from .config import DEFAULT_COSMOS_ADDRESS_PREFIX

CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
CHECKSUM_SIZE = 6
GENERATOR = [0x3b6a57b2, 0x26508e6d, 0x1ea119fa, 0x3d4233dd, 0x2a1462b3]
EVM_ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")


class Bech32DecodeError(ValueError):
    pass


def polymod(values):
    chk = 1
    for value in values:
        top = chk >> 25
        chk = (chk & 0x1ffffff) << 5 ^ value
        for i in range(5):
            chk ^= GENERATOR[i] if ((top >> i) & 1) else 0
    return chk


def hrp_expand(hrp):
    return [ord(x) >> 5 for x in hrp] + [0] + [ord(x) & 31 for x in hrp]


def calculate_checksum(hrp, data):
    values = hrp_expand(hrp) + list(data)
    mod = polymod(values + [0] * CHECKSUM_SIZE) ^ 1
    return [(mod >> 5 * (5 - i)) & 31 for i in range(CHECKSUM_SIZE)]


def verify_checksum(hrp, data):
    return polymod(hrp_expand(hrp) + list(data)) == 1


def convertbits(data, frombits, tobits, pad=True):
    """General power-of-2 base conversion."""
    acc = 0
    bits = 0
    ret = []
    maxv = (1 << tobits) - 1
    max_acc = (1 << (frombits + tobits - 1)) - 1
    for value in data:
        if value < 0 or (value >> frombits):
            raise Bech32DecodeError("invalid value %d for %d-bit conversion" % (value, frombits))
        acc = ((acc << frombits) | value) & max_acc
        bits += frombits
        while bits >= tobits:
            bits -= tobits
            ret.append((acc >> bits) & maxv)
    if pad:
        if bits:
            ret.append((acc << (tobits - bits)) & maxv)
    elif bits >= frombits or ((acc << (tobits - bits)) & maxv):
        raise Bech32DecodeError("non-zero padding")
    return ret


def bech32_encode(hrp: str, payload: bytes) -> str:
    data = convertbits(payload, 8, 5)
    checksum = calculate_checksum(hrp, data)
    return hrp + "1" + "".join(CHARSET[d] for d in data + checksum)


def bech32_decode(address: str):
    """Return (hrp, payload bytes) of a bech32 string, raising Bech32DecodeError if it is malformed."""
    if address.lower() != address and address.upper() != address:
        raise Bech32DecodeError("mixed case address")
    address = address.lower()
    pos = address.rfind("1")
    if pos < 1 or pos + CHECKSUM_SIZE + 1 > len(address):
        raise Bech32DecodeError("missing separator or checksum")
    hrp, rest = address[:pos], address[pos + 1:]
    if any(c not in CHARSET for c in rest):
        raise Bech32DecodeError("invalid character in data part")
    data = [CHARSET.find(c) for c in rest]
    if not verify_checksum(hrp, data):
        raise Bech32DecodeError("invalid checksum")
    return hrp, bytes(convertbits(data[:-CHECKSUM_SIZE], 5, 8, pad=False))


def normalize_private_key(private_key) -> bytes:
    if isinstance(private_key, (bytes, bytearray)):
        return bytes(private_key)
    return eth_utils.decode_hex(private_key)


def private_key_to_cosmos_address(private_key, prefix=DEFAULT_COSMOS_ADDRESS_PREFIX) -> str:
    public_key = keys.PrivateKey(normalize_private_key(private_key)).public_key
    sha = hashlib.sha256(public_key.to_compressed_bytes()).digest()
    account_id = RIPEMD160.new(sha).digest()
    return bech32_encode(prefix, account_id)


def is_valid_cosmos_address(address: str, prefix=None) -> bool:
    try:
        hrp, payload = bech32_decode(address)
    except Bech32DecodeError:
        return False
    if prefix is not None and hrp != prefix:
        return False
    return len(payload) in (20, 32)


def is_valid_evm_address(address: str) -> bool:
    return bool(EVM_ADDRESS_PATTERN.match(address))
