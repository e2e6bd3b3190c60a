"""Non-fatal configuration checks."""

import warnings
from typing import Any, Dict, List


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """
    Inspect raw configuration for settings that are legal but probably unintended.

    Args:
        config_dict: Raw configuration dictionary

    Returns:
        List of warning messages
    """
    messages = []

    matching = config_dict.get("matching") or {}
    if not isinstance(matching, dict):
        return messages

    min_score = matching.get("min_score")
    if min_score == 0:
        messages.append(
            "matching.min_score is 0: every applicant will be matched to every opportunity"
        )
    elif isinstance(min_score, int) and min_score > 90:
        messages.append(
            f"High matching.min_score ({min_score}) will only create near-perfect matches"
        )

    statuses = matching.get("opportunity_statuses")
    if isinstance(statuses, list) and "active" not in [
        s.strip().lower() for s in statuses if isinstance(s, str)
    ]:
        messages.append("matching.opportunity_statuses does not include 'active'")

    return messages


def emit_warnings(warning_messages: List[str]) -> None:
    """Emit each message as a UserWarning."""
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
