import copy
from typing import Any, Dict, Mapping, Optional


def shallow_merge(*layers: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Merge mappings left to right at the top level only.

    Logic:
    - Later layers win for any key they contain.
    - Nested dicts and lists are NOT merged; a later value replaces the
      earlier one wholesale.
    - None layers are skipped.

    Returns a NEW dictionary with deep-copied values (pure function), so the
    result can be edited without touching SQLAlchemy-managed JSON columns.
    """
    result: Dict[str, Any] = {}
    for layer in layers:
        if not layer:
            continue
        for key, value in layer.items():
            result[key] = copy.deepcopy(value)
    return result
