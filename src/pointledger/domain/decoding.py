from __future__ import annotations

from eth_utils import keccak

from .errors import DecodeError
from .models import LogRecord, TransferEvent
from .value_types import Address, Topic


TRANSFER_SIGNATURE = "Transfer(address,address,uint256)"
# 0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef
TRANSFER_T0 = Topic("0x" + keccak(text=TRANSFER_SIGNATURE).hex())

_WORD = 32

# --------- 32B word helpers ---------------------------------------------------

def _topic_bytes(t: str) -> bytes:
    h = t[2:] if t[:2].lower() == "0x" else t
    try:
        return bytes.fromhex(h)
    except ValueError as e:
        raise DecodeError(f"topic is not hex: {t!r}") from e

def _addr_from_topic(t: str) -> Address:
    w = _topic_bytes(t)
    if len(w) != _WORD:
        raise DecodeError(f"address topic must be {_WORD} bytes, got {len(w)}")
    if any(w[:12]):
        raise DecodeError(f"non-canonical address topic {t}")
    return Address("0x" + w[-20:].hex())

def _u256(w: bytes) -> int:
    return int.from_bytes(w, "big")

# ---------------------------- public API --------------------------------------

def is_transfer(log: LogRecord) -> bool:
    return len(log.topics) == 3 and log.topics[0].lower() == TRANSFER_T0

def decode_transfer(log: LogRecord) -> TransferEvent | None:
    """
    Decode an ERC-20 style Transfer log.

    Returns None when the record is not a Transfer (wrong topic count or
    topic0), whatever its payload. Raises DecodeError when it is one but the
    payload is malformed.
    """
    if not is_transfer(log):
        return None
    if len(log.data) != _WORD:
        raise DecodeError(f"Transfer data must be {_WORD} bytes, got {len(log.data)}")
    return TransferEvent(
        sender=_addr_from_topic(log.topics[1]),
        recipient=_addr_from_topic(log.topics[2]),
        value=_u256(log.data),
    )
