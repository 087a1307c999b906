import pytest
from solders.pubkey import Pubkey

from solana_pool_sniper.utils import constants


@pytest.mark.parametrize(
    "address",
    [
        constants.RAYDIUM_LIQUIDITY_PROGRAM_ID_V4,
        constants.OPENBOOK_PROGRAM_ID,
        constants.TOKEN_PROGRAM_ID,
        constants.ASSOCIATED_TOKEN_PROGRAM_ID,
        constants.SOL_MINT,
        constants.USDC_MINT,
    ],
)
def test_well_known_addresses_are_valid_pubkeys(address: str) -> None:
    assert str(Pubkey.from_string(address)) == address


def test_quote_tokens_point_at_known_mints() -> None:
    assert constants.QUOTE_TOKENS["WSOL"] == (constants.SOL_MINT, 9)
    assert constants.QUOTE_TOKENS["USDC"] == (constants.USDC_MINT, 6)
