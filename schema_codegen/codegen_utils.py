import logging
from typing import Callable, Dict

import black
from black import FileMode, NothingChanged as BlackNothingChanged, format_str as black_format_str

from schema_codegen.constants import DefaultConfig

logger = logging.getLogger(__name__)

BLACK_FORMATTER_MODE = FileMode(line_length=DefaultConfig.BLACK_LINE_LENGTH)


def format_python_code_using_black(logical_name: str, code_string: str) -> str:
    """Formats the given Python code using Black."""
    try:
        formatted_code = black_format_str(code_string, mode=BLACK_FORMATTER_MODE)
        logger.debug(f"Formatted code using Black: {logical_name}")
        return formatted_code
    except BlackNothingChanged:
        logger.debug(f"Black formatter did not change the code: {logical_name}")
        return code_string
    except black.InvalidInput as e:
        logger.error(f"Could not format {logical_name} using Black: {e}")
        logger.warning("Keeping unformatted Python code due to Black error.")
        return code_string


def keep_as_is(logical_name: str, code_string: str) -> str:
    """Formatter for template sets that ship already formatted output."""
    return code_string if code_string.endswith("\n") else code_string + "\n"


FORMATTERS: Dict[str, Callable[[str, str], str]] = {
    "black": format_python_code_using_black,
    "none": keep_as_is,
}


def get_formatter(name: str) -> Callable[[str, str], str]:
    try:
        return FORMATTERS[name]
    except KeyError:
        raise ValueError(f"Unknown formatter '{name}'. Available: {', '.join(sorted(FORMATTERS))}") from None
