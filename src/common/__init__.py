from common import llm
from common.ids import generate_id
from common.jsonio import atomic_write_text, dump_json, parse_json

__all__ = ["llm", "generate_id", "parse_json", "dump_json", "atomic_write_text"]
