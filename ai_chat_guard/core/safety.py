"""
Request safety checks and response sanitization.

Rule-table filter used as the default SafetyValidator.

Check Order (validate_request):
1. Safety rules - errors block the request, warnings are reported
2. Malicious code patterns - any match blocks the request
3. Sensitive information - reported as a single warning
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Pattern, Sequence, Tuple

from .types import ValidationResult


class RuleSeverity(Enum):
    """Outcome of a matched safety rule."""
    ERROR = "error"      # Block the request
    WARNING = "warning"  # Allow, but report


@dataclass(frozen=True)
class SafetyRule:
    """A named pattern checked against every request."""
    name: str
    pattern: Pattern[str]
    severity: RuleSeverity
    message: str


DEFAULT_RULES: Tuple[SafetyRule, ...] = (
    SafetyRule(
        name="dangerous_file_operations",
        pattern=re.compile(r"rm\s+-rf\s+[/\\]|del\s+/[sq]\s+\*|format\s+c:", re.IGNORECASE),
        severity=RuleSeverity.ERROR,
        message="Dangerous file system operations are not allowed",
    ),
    SafetyRule(
        name="privilege_escalation",
        pattern=re.compile(r"\bsudo\s+|\brunas\s+|\bsu\s+-", re.IGNORECASE),
        severity=RuleSeverity.ERROR,
        message="Privilege escalation commands are not allowed",
    ),
    SafetyRule(
        name="code_injection",
        pattern=re.compile(r"\beval\s*\(|\bexec\s*\(|\bsystem\s*\(|\bshell_exec\s*\(", re.IGNORECASE),
        severity=RuleSeverity.ERROR,
        message="Code injection patterns detected",
    ),
    SafetyRule(
        name="network_access",
        pattern=re.compile(r"\bcurl\s+|\bwget\s+|fetch\s*\(.*http|XMLHttpRequest", re.IGNORECASE),
        severity=RuleSeverity.WARNING,
        message="Network access detected - review for security",
    ),
    SafetyRule(
        name="file_access",
        pattern=re.compile(r"\bopen\s*\(.*['\"/\\]|readFile\s*\(|writeFile\s*\(", re.IGNORECASE),
        severity=RuleSeverity.WARNING,
        message="File access operations detected",
    ),
    SafetyRule(
        name="database_operations",
        pattern=re.compile(r"DROP\s+TABLE|DELETE\s+FROM.*WHERE\s+1=1|TRUNCATE\s+TABLE", re.IGNORECASE),
        severity=RuleSeverity.ERROR,
        message="Dangerous database operations detected",
    ),
)

MALICIOUS_CODE_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"rm\s+-rf\s+[/\\]"),
    re.compile(r"\bsudo\s+"),
    re.compile(r"\beval\s*\("),
    re.compile(r"\bexec\s*\("),
    re.compile(r"<script[^>]*>", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"\bon\w+\s*=\s*[\"']", re.IGNORECASE),
    re.compile(r"document\.cookie", re.IGNORECASE),
    re.compile(r"window\.location", re.IGNORECASE),
    re.compile(r"\.innerHTML\s*=", re.IGNORECASE),
    re.compile(r"\bsystem\s*\(", re.IGNORECASE),
    re.compile(r"\bshell_exec\s*\(", re.IGNORECASE),
    re.compile(r"\bpassthru\s*\(", re.IGNORECASE),
    re.compile(r"\bproc_open\s*\(", re.IGNORECASE),
)

# (label, pattern) pairs; the label is what gets reported
SENSITIVE_PATTERNS: Tuple[Tuple[str, Pattern[str]], ...] = (
    ("email addresses", re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")),
    ("phone numbers", re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b")),
    ("credit card numbers", re.compile(r"\b\d{4}[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}\b")),
    ("social security numbers", re.compile(r"\b\d{3}-\d{2}-\d{4}\b")),
    ("passwords", re.compile(r"password\s*[:=]\s*['\"][^'\"]+['\"]", re.IGNORECASE)),
    ("API keys", re.compile(r"api[_-]?key\s*[:=]\s*['\"][^'\"]+['\"]", re.IGNORECASE)),
    ("tokens", re.compile(r"token\s*[:=]\s*['\"][^'\"]+['\"]", re.IGNORECASE)),
)

_SCRIPT_TAG = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
_JAVASCRIPT_URL = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"\bon\w+\s*=", re.IGNORECASE)
_CODE_BLOCK = re.compile(r"```[\s\S]*?```")

_REDACTIONS: Tuple[Tuple[Pattern[str], str], ...] = (
    (re.compile(r"\b[A-Za-z0-9]{32,}\b"), "[API_KEY_REDACTED]"),
    (re.compile(r"://[^:/\s]+:[^@\s]+@"), "://[CREDENTIALS_REDACTED]@"),
    (re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), "[EMAIL_REDACTED]"),
    (re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b"), "[PHONE_REDACTED]"),
)

_CODE_BLOCK_REWRITES: Tuple[Tuple[Pattern[str], str], ...] = (
    (re.compile(r"rm\s+-rf\s+[/\\]"), "# rm -rf / # DANGEROUS COMMAND REMOVED"),
    (re.compile(r"\bsudo\s+"), "# sudo # PRIVILEGE ESCALATION REMOVED "),
    (re.compile(r"format\s+c:", re.IGNORECASE), "# format c: # DANGEROUS COMMAND REMOVED"),
)


class SafetyFilter:
    """Default request/response safety filter.

    Rule tables may be replaced per instance; the defaults cover destructive
    shell commands, privilege escalation, code injection and dangerous SQL.
    """

    def __init__(
        self,
        rules: Optional[Sequence[SafetyRule]] = None,
        malicious_patterns: Optional[Sequence[Pattern[str]]] = None,
        sensitive_patterns: Optional[Sequence[Tuple[str, Pattern[str]]]] = None
    ):
        self.rules = tuple(rules if rules is not None else DEFAULT_RULES)
        self.malicious_patterns = tuple(
            malicious_patterns if malicious_patterns is not None else MALICIOUS_CODE_PATTERNS
        )
        self.sensitive_patterns = tuple(
            sensitive_patterns if sensitive_patterns is not None else SENSITIVE_PATTERNS
        )

    def validate_request(self, text: str) -> ValidationResult:
        """Check a user request against every rule table.

        Args:
            text: Raw request text

        Returns:
            ValidationResult; invalid when any error-severity rule or
            malicious pattern matched
        """
        errors: List[str] = []
        warnings: List[str] = []

        # 1. Safety rules
        for rule in self.rules:
            if rule.pattern.search(text):
                if rule.severity is RuleSeverity.ERROR:
                    errors.append(rule.message)
                else:
                    warnings.append(rule.message)

        # 2. Malicious code
        if self.check_for_malicious_code(text):
            errors.append("Message contains potentially malicious code patterns")

        # 3. Sensitive information
        detected = self.detect_sensitive_info(text)
        if detected:
            warnings.append(f"Message may contain sensitive information: {', '.join(detected)}")

        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)

    def sanitize_response(self, text: str) -> str:
        """Strip active content, redact sensitive data and defuse shell commands."""
        sanitized = _SCRIPT_TAG.sub("[SCRIPT_REMOVED]", text)
        sanitized = _JAVASCRIPT_URL.sub("javascript_removed:", sanitized)
        sanitized = _EVENT_HANDLER.sub("event_removed=", sanitized)
        sanitized = self.filter_sensitive_info(sanitized)
        return _CODE_BLOCK.sub(self._sanitize_code_block, sanitized)

    def check_for_malicious_code(self, text: str) -> bool:
        return any(pattern.search(text) for pattern in self.malicious_patterns)

    def detect_sensitive_info(self, text: str) -> List[str]:
        """Labels of the sensitive-data kinds found in ``text``, without duplicates."""
        detected: List[str] = []
        for label, pattern in self.sensitive_patterns:
            if pattern.search(text) and label not in detected:
                detected.append(label)
        return detected

    def filter_sensitive_info(self, text: str) -> str:
        for pattern, replacement in _REDACTIONS:
            text = pattern.sub(replacement, text)
        return text

    @staticmethod
    def _sanitize_code_block(match: "re.Match[str]") -> str:
        block = match.group(0)
        for pattern, replacement in _CODE_BLOCK_REWRITES:
            block = pattern.sub(replacement, block)
        return block
