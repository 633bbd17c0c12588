from __future__ import annotations
from typing import NewType, Literal

Address = NewType("Address", str)   # 0x-prefixed, lowercase, 40 hex chars
Topic   = NewType("Topic", str)     # 66-char 0x-hash, lowercase
EventId = NewType("EventId", str)   # "<block_number>:<log_index>"
Health  = Literal["healthy", "degraded", "stopped"]
