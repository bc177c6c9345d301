"""
ASCII Common Layer Interface (CLI) codec.

Reads and writes slice stacks in the CLI text format used by additive
manufacturing machines.  Entry points return ``Ok``/``Err`` results;
recoverable problems found while reading are returned as warnings.
"""

from slice_exchange.cli_format.decoder import (
    CliDocument,
    CliHeader,
    CliReader,
    ParseState,
    decode_cli,
    read_cli_file,
)
from slice_exchange.cli_format.encoder import (
    WINDING_CODES,
    CliWriter,
    LayoutMode,
    encode_cli,
    write_cli_file,
)
from slice_exchange.cli_format.results import (
    CliError,
    DecodeError,
    DecodeErrorKind,
    DecodeWarning,
    EncodeError,
    EncodeErrorKind,
    Err,
    Ok,
    Result,
    WarningKind,
)

__all__ = [
    "CliDocument",
    "CliError",
    "CliHeader",
    "CliReader",
    "CliWriter",
    "DecodeError",
    "DecodeErrorKind",
    "DecodeWarning",
    "EncodeError",
    "EncodeErrorKind",
    "Err",
    "LayoutMode",
    "Ok",
    "ParseState",
    "Result",
    "WINDING_CODES",
    "WarningKind",
    "decode_cli",
    "encode_cli",
    "read_cli_file",
    "write_cli_file",
]
