"""Program ids, well-known mints, and time helpers."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def local_now() -> datetime:
    """Current local wall-clock time, timezone-aware."""
    return datetime.now().astimezone()


RAYDIUM_LIQUIDITY_PROGRAM_ID_V4 = "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8"
OPENBOOK_PROGRAM_ID = "srmqPvymJeFKQ4zGQed1GFppgkRHtKXiTMcRGaKjbbX"
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
ASSOCIATED_TOKEN_PROGRAM_ID = "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"

SOL_MINT = "So11111111111111111111111111111111111111112"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"

# symbol -> (mint, decimals)
QUOTE_TOKENS: dict[str, tuple[str, int]] = {
    "WSOL": (SOL_MINT, 9),
    "USDC": (USDC_MINT, 6),
}

AMM_AUTHORITY_SEED = b"amm authority"

__all__ = [
    "AMM_AUTHORITY_SEED",
    "ASSOCIATED_TOKEN_PROGRAM_ID",
    "OPENBOOK_PROGRAM_ID",
    "QUOTE_TOKENS",
    "RAYDIUM_LIQUIDITY_PROGRAM_ID_V4",
    "SOL_MINT",
    "TOKEN_PROGRAM_ID",
    "USDC_MINT",
    "local_now",
    "utc_now",
]
