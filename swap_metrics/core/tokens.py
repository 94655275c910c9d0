"""
Token identifier helpers: map raw token ids seen in swap events to price ids,
and detect native <-> intent conversions (deposits and withdrawals).

Raw ids come in two shapes: namespaced intent ids (``intents:usdc``) and native
NEAR contract ids (``usdt.tether-token.near``). Both resolve through the same
lookup table.
"""

from typing import Dict, FrozenSet, Optional, Tuple

INTENT_PREFIX = "intents:"
MEME_COOKING_SUFFIX = ".meme-cooking.near"

# ---------------------------------------------------------------------
# Token id -> price id
# ---------------------------------------------------------------------

BASE_PRICE_IDS: Dict[str, str] = {
    # intent symbols (mostly CoinGecko slugs)
    "zcash": "zcash",
    "melania": "melania-meme",
    "bera": "berachain-bera",
    "aurora": "aurora-near",
    "shib": "shiba-inu",
    "gmx": "gmx",
    "mog": "mog-coin",
    "brett": "based-brett",
    "sweat": "sweatcoin",
    "turbo": "turbo",
    "wif": "dogwifcoin",
    "bome": "book-of-meme",
    "blackdragon": "black-dragon",
    "shitzu": "shitzu",
    "purge": "forgive-me-father",
    "brrr": "burrow",
    "gno": "gnosis",
    "cow": "cow-protocol",
    "safe": "safe",
    "usdc": "usd-coin",
    "trump": "official-trump",
    "near": "near",
    "usdt": "tether",
    "dai": "dai",
    "eth": "ethereum",
    "btc": "bitcoin",
    "pepe": "pepe",
    "link": "chainlink",
    "uni": "uniswap",
    "arb": "arbitrum",
    "aave": "aave",
    "sol": "solana",
    "doge": "dogecoin",
    "xrp": "ripple",
    "ton": "the-open-network",
    "abg": "abg-966.meme-cooking.near",
    "ref": "token.v2.ref-finance.near",
    "mpdao": "mpdao-token.near",
    "hapi": "d9c2d319cd7e6177336b0a9c93c21cb48d84fb54.factory.bridge.near",
    "score": "score.aidols.near",
    "kaito": "kaito",
    "trx": "tron",
    "tron": "tron",
    "cbbtc": "coinbase-wrapped-btc",
    "bnb": "binancecoin",
    "pol": "matic-network",
    "sui": "sui",
    "gnosis": "gnosis",
    "aptos": "aptos",
    "cardano": "cardano",
    "kat": "kat",
    "npro": "npro",
    "public": "public-ai",
    "rhea": "rhea",
    "wbtc": "wrapped-bitcoin",
    "ltc": "litecoin",
    "itlx": "itlx",
    # native NEAR ids
    "near-native": "near",
    "noear": "noear-324.meme-cooking.near",
    "gnear": "gnear-229.meme-cooking.near",
    "eth.bridge.near": "ethereum",
    "usdt.tether-token.near": "tether",
    "token.sweat": "sweatcoin",
    "token.burrow.near": "burrow",
    "blackdragon.tkn.near": "black-dragon",
    "token.0xshitzu.near": "shitzu",
    "score.aidols.near": "score.aidols.near",
    "zec.omft.near": "zcash",
    "xrp.omft.near": "ripple",
    "kat.token0.near": "kat",
    "a35923162c49cf95e6bf26623385eb431ad920d3.factory.bridge.near": "matic-network",
    "npro.nearmobile.near": "npro",
    "token.publicailab.near": "public-ai",
    "token.rhealab.near": "rhea",
    "itlx.intellex_xyz.near": "itlx",
    # contracts priced under their own id
    "mpdao-token.near": "mpdao-token.near",
    "token.v2.ref-finance.near": "token.v2.ref-finance.near",
    "17208628f84f5d6ad33f0da3bbbeb27ffcb398eac501a31bd6ad2011e36133a1": "17208628f84f5d6ad33f0da3bbbeb27ffcb398eac501a31bd6ad2011e36133a1",
    "aaaaaa20d9e0e2461697782ef11675f668207961.factory.bridge.near": "aaaaaa20d9e0e2461697782ef11675f668207961.factory.bridge.near",
    "d9c2d319cd7e6177336b0a9c93c21cb48d84fb54.factory.bridge.near": "d9c2d319cd7e6177336b0a9c93c21cb48d84fb54.factory.bridge.near",
}

# ---------------------------------------------------------------------
# Native token -> intent equivalent
# ---------------------------------------------------------------------

NATIVE_TO_INTENT: Dict[str, str] = {
    "near-native": "intents:near",
    "usdt.tether-token.near": "intents:usdt",
    "17208628f84f5d6ad33f0da3bbbeb27ffcb398eac501a31bd6ad2011e36133a1": "intents:usdc",
    "eth.bridge.near": "intents:eth",
    "zec.omft.near": "intents:zcash",
    "xrp.omft.near": "intents:xrp",
    "a35923162c49cf95e6bf26623385eb431ad920d3.factory.bridge.near": "intents:pol",
    "npro.nearmobile.near": "intents:npro",
    "kat.token0.near": "intents:kat",
    "token.publicailab.near": "intents:public",
    "token.rhealab.near": "intents:rhea",
    "itlx.intellex_xyz.near": "intents:itlx",
    "token.sweat": "intents:sweat",
    "token.burrow.near": "intents:brrr",
    "blackdragon.tkn.near": "intents:blackdragon",
    "token.0xshitzu.near": "intents:shitzu",
    "token.v2.ref-finance.near": "intents:ref",
    "mpdao-token.near": "intents:mpdao",
    "score.aidols.near": "intents:score",
    "d9c2d319cd7e6177336b0a9c93c21cb48d84fb54.factory.bridge.near": "intents:hapi",
    "aaaaaa20d9e0e2461697782ef11675f668207961.factory.bridge.near": "intents:aurora",
}

INTENT_TO_NATIVE: Dict[str, str] = {intent.lower(): native for native, intent in NATIVE_TO_INTENT.items()}

# Both directions: (native, intent) is a deposit, (intent, native) a withdrawal.
EQUIVALENT_PAIRS: FrozenSet[Tuple[str, str]] = frozenset(
    [(native.lower(), intent.lower()) for native, intent in NATIVE_TO_INTENT.items()]
    + [(intent, native.lower()) for intent, native in INTENT_TO_NATIVE.items()]
)


def normalize_token_id(token_id: Optional[str]) -> Optional[str]:
    if not isinstance(token_id, str):
        return None
    cleaned = token_id.strip().lower()
    return cleaned or None


def resolve_price_id(raw_token_id: Optional[str]) -> Optional[str]:
    """
    Resolve a raw token id to the id used by the price feed.

    Returns ``None`` when no rule matches; never raises.
    """
    cleaned = normalize_token_id(raw_token_id)
    if cleaned is None:
        return None
    if cleaned.startswith(INTENT_PREFIX):
        cleaned = cleaned[len(INTENT_PREFIX):]

    direct = BASE_PRICE_IDS.get(cleaned)
    if direct:
        return direct

    # "gnear-229.meme-cooking.near" -> "gnear"
    if MEME_COOKING_SUFFIX in cleaned:
        symbol = cleaned.split("-")[0]
        return BASE_PRICE_IDS.get(symbol) if symbol else None

    return None


def is_equivalent_pair(token_in_id: Optional[str], token_out_id: Optional[str]) -> bool:
    """True when the swap only moves a token between its native and intent form."""
    token_in = normalize_token_id(token_in_id)
    token_out = normalize_token_id(token_out_id)
    if token_in is None or token_out is None:
        return False
    return (token_in, token_out) in EQUIVALENT_PAIRS
