import hashlib
import hmac
import re

import pytest

from tradebot.errors import ConfigurationError
from tradebot.signer import Signer

# Published Binance API documentation example
DOC_SECRET = "NhqPtmdSJYdKjVHjA7PZj4Mge3R5YNiP1e3UZjInClVN65XAbvqqM6A7H5fATj0j"
DOC_QUERY = "symbol=LTCBTC&side=BUY&type=LIMIT&timeInForce=GTC&quantity=1&price=0.1&recvWindow=5000&timestamp=1499827319559"
DOC_SIGNATURE = "c8db56825ae71d6d79447849e617115f4a920fa2acdcab2b053c4b2838bd6b71"


def test_sign_matches_documented_example():
    assert Signer(DOC_SECRET).sign(DOC_QUERY) == DOC_SIGNATURE


def test_sign_is_lowercase_hex_sha256():
    sig = Signer("secret").sign("symbol=BTCUSDT&timestamp=1")
    assert re.fullmatch(r"[0-9a-f]{64}", sig)
    assert sig == hmac.new(b"secret", b"symbol=BTCUSDT&timestamp=1", hashlib.sha256).hexdigest()


def test_sign_is_deterministic_and_order_sensitive():
    signer = Signer("secret")
    assert signer.sign("a=1&b=2") == signer.sign("a=1&b=2")
    assert signer.sign("a=1&b=2") != signer.sign("b=2&a=1")


@pytest.mark.parametrize("secret", ["", "   "])
def test_empty_secret_rejected(secret):
    with pytest.raises(ConfigurationError):
        Signer(secret)


def test_repr_does_not_leak_secret():
    assert "supersecret" not in repr(Signer("supersecret"))
