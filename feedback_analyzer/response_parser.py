"""Extract the JSON object a text generator embedded in free-form output.

Models asked to "respond as JSON" often wrap the object in commentary or a
markdown fence. The span from the first "{" to the last "}" is taken as the
object. This is greedy, not a balanced-brace scan: stray braces in the
surrounding prose will break extraction, so every field read from the result
must be treated as optional.
"""

import json
import logging
from typing import Any, Dict

logger = logging.getLogger(__name__)


def parse_embedded_json(text: Any) -> Dict[str, Any]:
    """Parse the JSON object embedded in text.

    Returns an empty dict when there is no "{...}" span, the span is not
    valid JSON (including integers too long to convert), or it decodes to
    something other than an object. Never raises.
    """
    if not isinstance(text, str):
        return {}

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end < start:
        return {}

    try:
        parsed = json.loads(text[start:end + 1])
    except (ValueError, RecursionError) as e:
        logger.warning(f"Error parsing generated response as JSON: {e}")
        return {}

    if not isinstance(parsed, dict):
        return {}
    return parsed
