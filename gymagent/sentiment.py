"""Keyword sentiment heuristic for member replies.

Only used as a triage hint when a reply could not be evaluated by the model.
It never drives a decision.
"""

import re

_POSITIVE = re.compile(
    r"\b(yes|yeah|sure|sounds good|love to|definitely|absolutely|coming|back|sign(?:ing)? up|"
    r"join|ready|great|awesome|perfect|let'?s do|schedule|see you|next week|works)\b",
    re.IGNORECASE,
)
_NEGATIVE = re.compile(
    r"\b(no|nope|not interested|cancel|stop|unsubscribe|leave me alone|don'?t contact)\b",
    re.IGNORECASE,
)


def sentiment_score(text: str) -> int:
    """Return -1 for a negative reply, 1 for a positive one, 0 when neither keyword set hits.

    Negative keywords win over positive ones.
    """
    if _NEGATIVE.search(text):
        return -1
    if _POSITIVE.search(text):
        return 1
    return 0
