"""
Chat message normalization for providers that require user/assistant alternation.
"""

from typing import Dict, List, Sequence


def fix_messages(messages: Sequence[Dict[str, str]]) -> List[Dict[str, str]]:
    """
    Merge consecutive "user" messages into one.

    Anthropic rejects two "user" roles in a row, so each run of user messages
    collapses into its first entry with the contents joined by a newline.
    Other roles are never merged. The input is not modified.

    Args:
        messages: Ordered {"role", "content"} dicts

    Returns:
        New list with no two adjacent "user" entries
    """
    fixed: List[Dict[str, str]] = []
    for message in messages:
        if fixed and fixed[-1]["role"] == "user" and message["role"] == "user":
            fixed[-1]["content"] += "\n" + message["content"]
        else:
            fixed.append(dict(message))
    return fixed
