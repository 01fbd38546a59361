"""Definition-file parsing."""

from .parser import DefFile, parse_def_file, parse_def_text, read_def_text, replace_stage_name

__all__ = ["DefFile", "parse_def_file", "parse_def_text", "read_def_text", "replace_stage_name"]
