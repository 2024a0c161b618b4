from geyser.errors import GeyserError
from geyser.geyser import TokenGeyser
from geyser.ledger.rewards import AccountingSnapshot

__all__ = ["AccountingSnapshot", "GeyserError", "TokenGeyser"]
