from tokenvm.errors import (
    AssetNotFoundError,
    InvalidAddressError,
    InvalidBalanceError,
    TokenVMError,
    TxNotFoundError,
)


def test_tx_not_found_message():
    err = TxNotFoundError()
    assert str(err) == "tx not found"
    assert isinstance(err, TokenVMError) and isinstance(err, LookupError)


def test_asset_not_found_message():
    err = AssetNotFoundError()
    assert str(err) == "asset not found"
    assert isinstance(err, TokenVMError) and isinstance(err, LookupError)


def test_invalid_balance_plain():
    err = InvalidBalanceError()
    assert str(err) == "invalid balance"
    assert err.detail is None


def test_invalid_balance_with_detail():
    err = InvalidBalanceError("could not add balance")
    assert str(err) == "invalid balance: could not add balance"
    assert err.detail == "could not add balance"
    assert str(err).startswith(InvalidBalanceError.base_message)


def test_invalid_balance_caught_as_base():
    err = InvalidBalanceError("x")
    assert isinstance(err, TokenVMError)
    assert err.detail == "x"
    assert str(err) == "invalid balance: x"


def test_invalid_address_is_value_error():
    err = InvalidAddressError("bad hrp")
    assert isinstance(err, ValueError)
    assert "bad hrp" in str(err)