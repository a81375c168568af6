from ra_companion.utils.sse import format_sse, parse_sse
from ra_companion.utils.normalize import normalize_string_list, repair_llm_json

__all__ = ["format_sse", "parse_sse", "normalize_string_list", "repair_llm_json"]
