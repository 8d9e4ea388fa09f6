"""Low level call data encoding and decoding.

We talk to proxies without having their full ABI,
so we build raw call data by hand:

- ``selector`` + one 32-byte left-padded address word for administrative calls

- Decode a single address word out of a raw ``eth_call`` response
"""

import logging
from typing import Any, Sequence

import eth_abi
from eth_abi.exceptions import EncodingError, ParseError
from eth_abi.grammar import BasicType, parse
from eth_typing import HexAddress
from eth_utils import function_abi_to_4byte_selector, is_address, to_checksum_address
from eth_utils.abi import collapse_if_tuple
from hexbytes import HexBytes

logger = logging.getLogger(__name__)


#: Ethereum 0x0000000000000000000000000000000000000000 address as a string.
ZERO_ADDRESS_STR = "0x0000000000000000000000000000000000000000"

#: The name of the function we encode as a proxy initializer payload
INITIALIZER_FUNCTION_NAME = "initialize"

#: Size of one ABI word
WORD_SIZE = 32


def is_zero_address(address: HexAddress | str | None) -> bool:
    """Is address missing or 0x0000...0000."""
    if not address:
        return True
    return int(address, 16) == 0


def normalise_address(address: HexAddress | str) -> HexAddress:
    """Checksum an address given by a user.

    Web3.py refuses lowercased addresses, operators often paste them.

    :raise ValueError:
        Not a 20-byte hex address
    """
    if not isinstance(address, str) or not is_address(address):
        raise ValueError(f"Not an address: {address!r}")
    return to_checksum_address(address)


def encode_address_word(address: HexAddress | str) -> bytes:
    """ABI encode a single address as a 32-byte left-padded word."""
    return eth_abi.encode(["address"], [to_checksum_address(address)])


def decode_address_word(data: bytes | None) -> HexAddress | None:
    """Extract an address from a raw call response.

    The response must be at least one 32-byte word,
    the upper 12 bytes of the first word must be zero
    and the address itself must not be the zero address.

    Example:

    .. code-block:: python

        data = connector.call(proxy_address, implementation_selector)
        implementation = decode_address_word(data)

    :param data:
        Raw ``eth_call`` return data

    :return:
        Checksummed address, or ``None`` if the response is empty or does not look like an address.
    """
    if not data:
        return None

    data = HexBytes(data)
    if len(data) < WORD_SIZE:
        logger.debug("Response too short to contain an address: %s", data.hex())
        return None

    word = data[0:WORD_SIZE]
    if any(word[0:12]):
        logger.debug("Response word has dirty upper bytes, not an address: %s", word.hex())
        return None

    address = word[12:WORD_SIZE]
    if not any(address):
        return None

    return to_checksum_address(address)


def encode_upgrade_call(selector: bytes, new_implementation: HexAddress | str) -> bytes:
    """Encode ``upgradeTo(address)`` style administrative call.

    :param selector:
        4-byte function selector

    :param new_implementation:
        The address argument

    :return:
        ``selector`` followed by one 32-byte word
    """
    assert len(selector) == 4, f"Bad selector: {selector!r}"
    return bytes(selector) + encode_address_word(new_implementation)


def find_function_abi(abi: list[dict], name: str, arity: int | None = None) -> dict | None:
    """Find a function from a contract ABI by its name and number of arguments."""
    for entry in abi:
        if entry.get("type") != "function" or entry.get("name") != name:
            continue
        if arity is not None and len(entry.get("inputs", [])) != arity:
            continue
        return entry
    return None


def find_constructor_abi(abi: list[dict]) -> dict | None:
    """Constructor ABI entry, or ``None`` for contracts with the default constructor."""
    for entry in abi:
        if entry.get("type") == "constructor":
            return entry
    return None


def _is_integer_type(type_str: str) -> bool:
    try:
        abi_type = parse(type_str)
    except ParseError:
        return False
    return isinstance(abi_type, BasicType) and abi_type.base in ("int", "uint") and not abi_type.is_array


def coerce_abi_args(inputs: list[dict], args: Sequence[Any]) -> list[Any]:
    """Convert numeric strings to integers where the ABI expects ``int``/``uint``.

    Arguments coming from environment variables and JSON files
    carry large numbers as strings, e.g. ``"1000000000000000000000"``.
    ABI encoder refuses those for integer types.

    Other arguments are passed through unchanged.

    :param inputs:
        ``inputs`` of a function or a constructor ABI entry

    :raise ValueError:
        A string for an integer argument is not a decimal or 0x prefixed hex number
    """
    args = list(args)
    if len(inputs) != len(args):
        # Let the encoder complain about the arity
        return args

    coerced = []
    for input_abi, arg in zip(inputs, args):
        if isinstance(arg, str) and _is_integer_type(collapse_if_tuple(input_abi)):
            try:
                arg = int(arg, 16) if arg.lower().startswith("0x") else int(arg)
            except ValueError as e:
                raise ValueError(f"Argument {input_abi.get('name') or '?'} ({input_abi['type']}) is not a number: {arg!r}") from e
        coerced.append(arg)
    return coerced


def coerce_constructor_args(abi: list[dict], args: Sequence[Any]) -> list[Any]:
    """Apply :py:func:`coerce_abi_args` to the constructor of a contract."""
    constructor = find_constructor_abi(abi)
    if constructor is None:
        return list(args)
    return coerce_abi_args(constructor.get("inputs", []), args)


def encode_function_call(fn_abi: dict, args: Sequence[Any]) -> bytes:
    """Encode function selector + its arguments as data payload.

    Numeric strings are accepted for integer arguments.

    :param fn_abi:
        Function ABI entry

    :raise ValueError:
        If arguments cannot be encoded as the types the ABI expects
    """
    inputs = fn_abi.get("inputs", [])
    arg_types = [collapse_if_tuple(i) for i in inputs]
    selector = function_abi_to_4byte_selector(fn_abi)
    args = coerce_abi_args(inputs, args)
    try:
        encoded_args = eth_abi.encode(arg_types, args)
    except (EncodingError, TypeError) as e:
        raise ValueError(f"Cannot encode {fn_abi['name']}({', '.join(arg_types)}) with args {list(args)}") from e
    return selector + encoded_args


def encode_initializer_payload(abi: list[dict], args: Sequence[Any]) -> bytes:
    """Build the call data a proxy passes to its implementation on construction.

    - If the implementation has an ``initialize`` function with matching arity,
      encode a call to it with ``args``

    - Otherwise return empty bytes: the implementation sets itself up
      in its own constructor and the proxy does not make a setup call

    :param abi:
        Implementation contract ABI

    :param args:
        Initializer arguments

    :return:
        Opaque call data, possibly empty
    """
    fn_abi = find_function_abi(abi, INITIALIZER_FUNCTION_NAME, arity=len(args))
    if fn_abi is None:
        return b""
    return encode_function_call(fn_abi, args)
