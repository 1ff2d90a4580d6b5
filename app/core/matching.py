"""
Need-type matching.

Need types, NGO focus areas and resource types are all free text, so the
default matcher is a case-insensitive substring test. Anything with the
NeedMatcher signature can replace it.
"""

from typing import Callable, Optional

NeedMatcher = Callable[[str, Optional[str]], bool]

def substring_match(need_type: str, candidate: Optional[str]) -> bool:
    if not need_type or not candidate:
        return False
    return need_type.strip().lower() in candidate.lower()

def ngo_matches_need(ngo, need_type: str, matcher: NeedMatcher = substring_match) -> bool:
    """True if the NGO's focus area or support type matches the need"""
    return matcher(need_type, ngo.focus_area) or matcher(need_type, ngo.support_type)
