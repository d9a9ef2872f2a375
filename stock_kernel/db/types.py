"""
Module: stock_kernel.db.types
Responsibility: Annotated column type aliases shared by every model, so that
    labels, actor ids and piece counts have identical definitions system-wide.
Architecture position: Kernel > DB.  Imported by db/base.py (which registers
    ANNOTATED_TYPES in the declarative type map) and by models/.
"""

from typing import Annotated

from sqlalchemy import BigInteger, String

# Whole-piece counts
PieceCount = Annotated[int, "pieces"]

# Thickness label (1", 2", custom).  Opaque, never parsed as a number.
ThicknessLabel = Annotated[str, 32]

# Actor id as issued by the upstream identity provider
ActorId = Annotated[str, 64]

# Actor display name
ActorName = Annotated[str, 200]

# Short identifier strings (codes, statuses, reference types)
ShortCode = Annotated[str, 50]

# Long text for notes, reasons and remarks
LongText = Annotated[str, 4000]

# Application idempotency key, e.g. transfer:<uuid>:complete
IdempotencyKey = Annotated[str, 128]


ANNOTATED_TYPES = {
    PieceCount: BigInteger(),
    ThicknessLabel: String(32),
    ActorId: String(64),
    ActorName: String(200),
    ShortCode: String(50),
    LongText: String(4000),
    IdempotencyKey: String(128),
}
