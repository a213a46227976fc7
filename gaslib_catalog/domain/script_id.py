"""
Rule-based extraction of Google Apps Script IDs from README text.

Patterns are tried in priority order: explicit labels first, then script.google.com
URLs, then a catch-all for bare tokens that look like legacy library IDs. The first
pattern yielding a value of at least MIN_SCRIPT_ID_LENGTH characters wins.
"""
import re
from dataclasses import dataclass
from typing import Optional, Pattern, Sequence

from gaslib_catalog.domain.models import ScriptIdMatch, ScriptType

MIN_SCRIPT_ID_LENGTH = 20
WEB_APP_ID_PREFIX = "AK"


@dataclass(frozen=True)
class ScriptIdPattern:
    """
    A single extraction rule. The value is capture group 1 when the regex has groups,
    otherwise the whole match. `script_type` of None means "classify by the value".
    """
    name: str
    regex: Pattern[str]
    script_type: Optional[ScriptType] = None

    def find(self, text: str, min_length: int = MIN_SCRIPT_ID_LENGTH) -> Optional[str]:
        for match in self.regex.finditer(text):
            value = match.group(1) if self.regex.groups else match.group(0)
            if value and len(value) >= min_length:
                return value
        return None

    def classify(self, value: str) -> ScriptType:
        if self.script_type is not None:
            return self.script_type
        if value.startswith(WEB_APP_ID_PREFIX):
            return ScriptType.WEB_APP
        return ScriptType.LIBRARY


DEFAULT_SCRIPT_ID_PATTERNS = (
    # Labels may be wrapped in Markdown emphasis, e.g. **Script ID:** <id>
    ScriptIdPattern(
        "label_ja",
        re.compile(r"スクリプト\s*ID[：:\s*_]*([A-Za-z0-9_-]{20,})", re.IGNORECASE),
    ),
    ScriptIdPattern(
        "label_en",
        re.compile(r"(?<![A-Za-z0-9])Script[\s_-]*ID(?![A-Za-z0-9])[：:\s*_]*([A-Za-z0-9_-]{20,})", re.IGNORECASE),
    ),
    # scriptId: '...', "scriptId": "...", script_id = `...`
    ScriptIdPattern(
        "label_quoted",
        re.compile(
            r"\bscript[\s_-]*id\b[\"']?\s*[：:=]?\s*['\"`]([A-Za-z0-9_-]{20,})['\"`]",
            re.IGNORECASE,
        ),
    ),
    ScriptIdPattern(
        "library_url",
        re.compile(r"https?://script\.google\.com/macros/d/([A-Za-z0-9_-]{20,})"),
        ScriptType.LIBRARY,
    ),
    # Workspace deployments carry a domain segment: /a/macros/example.com/s/<id>/exec
    ScriptIdPattern(
        "web_app_url",
        re.compile(
            r"https?://script\.google\.com/(?:a/)?macros/(?:[^/\s]+/)?s/(AK[A-Za-z0-9_-]{18,})/exec"
        ),
        ScriptType.WEB_APP,
    ),
    ScriptIdPattern(
        "legacy_token",
        re.compile(r"(?<![A-Za-z0-9_-])1[A-Za-z0-9_-]{20,}(?![A-Za-z0-9_-])"),
        ScriptType.LIBRARY,
    ),
)


def find_script_id(
    readme: Optional[str],
    patterns: Sequence[ScriptIdPattern] = DEFAULT_SCRIPT_ID_PATTERNS,
    min_length: int = MIN_SCRIPT_ID_LENGTH,
) -> Optional[ScriptIdMatch]:
    """
    Scans `readme` with each pattern in order and returns the first qualifying match.

    Returns:
        The match with its pattern name and classification, or None when nothing qualifies.
    """
    if not readme:
        return None

    for pattern in patterns:
        value = pattern.find(readme, min_length)
        if value is not None:
            return ScriptIdMatch(
                script_id=value,
                pattern=pattern.name,
                script_type=pattern.classify(value),
            )
    return None


def extract_script_id(
    readme: Optional[str],
    patterns: Sequence[ScriptIdPattern] = DEFAULT_SCRIPT_ID_PATTERNS,
) -> Optional[str]:
    match = find_script_id(readme, patterns)
    return match.script_id if match else None
