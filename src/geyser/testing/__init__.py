from geyser.testing.harness import (
    ALICE,
    BOB,
    GENESIS_TS,
    OWNER,
    GeyserHarness,
    make_geyser,
    nbt,
    nbt_approx,
    shares_approx,
)

__all__ = [
    "ALICE",
    "BOB",
    "GENESIS_TS",
    "OWNER",
    "GeyserHarness",
    "make_geyser",
    "nbt",
    "nbt_approx",
    "shares_approx",
]
