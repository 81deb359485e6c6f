"""
File parsers module.
"""

from parsers.file_decoder import (
    decode_file,
    detect_alias_mappings,
    match_alias,
)

__all__ = [
    "decode_file",
    "detect_alias_mappings",
    "match_alias",
]
