from enum import IntEnum


class ProtocolVersion(IntEnum):
    V1 = 1
    V2 = 2


#: Version advertised by ``GET /supported``.
CURRENT_VERSION = ProtocolVersion.V2
