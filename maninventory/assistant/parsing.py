"""Lenient extraction of a JSON array from free-form model output"""
import json
import logging
import re

from maninventory.core.exceptions import UpstreamParseError

logger = logging.getLogger(__name__)

ARRAY_PATTERN = re.compile(r'\[[\s\S]*\]')
FENCE_PATTERN = re.compile(r'^```(?:json)?\s*|\s*```$', re.IGNORECASE)


def extract_json_array(text):
    """
    Return the JSON array contained in ``text``.

    First tries the outermost ``[...]`` span (models like to wrap JSON in
    prose or markdown fences), then falls back to parsing the whole text.
    Anything that does not yield a list raises UpstreamParseError.
    """
    if not isinstance(text, str) or not text.strip():
        raise UpstreamParseError('AI response was empty')

    match = ARRAY_PATTERN.search(text)
    if match:
        try:
            value = json.loads(match.group(0))
            if isinstance(value, list):
                return value
        except ValueError:
            logger.debug("Delimited array did not parse, trying the whole response")

    try:
        value = json.loads(FENCE_PATTERN.sub('', text.strip()))
    except ValueError as e:
        logger.warning(f"Could not parse AI response as JSON: {text[:200]!r}")
        raise UpstreamParseError() from e

    # Some models wrap the list in an object
    if isinstance(value, dict):
        lists = [v for v in value.values() if isinstance(v, list)]
        if len(lists) == 1:
            return lists[0]
    if not isinstance(value, list):
        raise UpstreamParseError('AI response did not contain a list')
    return value
