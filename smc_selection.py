#!/usr/bin/env python3
"""
SMC (Share Mirror Controller) - Source Selection Policy
Version: 1.0.0
"""

from typing import Iterable, Optional

def pick(active_ids: Iterable[int], allowed: Iterable[int], last_chosen: Optional[int] = None) -> Optional[int]:
    """Choose the wired source to mirror, or None to release the output.

    The previously chosen source wins while it is still a candidate, so two
    simultaneously active wired inputs do not flap. Otherwise the highest id
    is taken as the most recently connected one.
    """
    candidates = set(active_ids) & set(allowed)
    if not candidates:
        return None
    if last_chosen is not None and last_chosen in candidates:
        return last_chosen
    return max(candidates)
