"""Safety gate for generated artifact source.

Generated components run inside the UI runtime with no further containment,
so anything that fails one of these rules is rejected outright.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from evolve_mcp.domain.models import ComponentType

RULE_EMPTY = "non_empty"
RULE_SIZE = "size_limit"
RULE_EXPORT_SHAPE = "export_shape"
RULE_DYNAMIC_EVAL = "no_dynamic_eval"
RULE_FORBIDDEN_API = "no_network_or_filesystem"
RULE_UNSAFE_DOM = "no_raw_html"
RULE_IMPORT_ALLOWLIST = "import_allowlist"
RULE_COMPONENT_PROPS = "component_props"

# The prop each kind of component is rendered with.
PROP_BY_KIND = {
    ComponentType.METRIC_INPUT: "onSave",
    ComponentType.EMOJI_SELECT: "onSave",
    ComponentType.CHART: "data",
}

_DYNAMIC_EVAL_PATTERNS = (
    # Any reference to eval, including indirect calls and aliases.
    re.compile(r"\beval\b"),
    re.compile(r"\bnew\s+Function\b"),
    re.compile(r"(?<![\w$.])Function\s*\("),
    re.compile(r"(?<![\w$.])Function\s*(?:[;,)\]]|$)", re.MULTILINE),
    # Reaching the Function constructor through any object.
    re.compile(r"\.\s*constructor\s*[.(]"),
    re.compile(r"\[\s*[\"'`]constructor[\"'`]\s*\]"),
    re.compile(r"\bset(?:Timeout|Interval)\s*\(\s*[\"'`]"),
    re.compile(r"\bimport\s*\("),
)
_FORBIDDEN_API_PATTERNS = (
    re.compile(r"\brequire\s*\("),
    re.compile(r"\bfetch\s*\("),
    re.compile(r"\bXMLHttpRequest\b"),
    re.compile(r"\bWebSocket\b"),
    re.compile(r"\bEventSource\b"),
    re.compile(r"\bsendBeacon\b"),
    re.compile(r"\bchild_process\b"),
    re.compile(r"\bprocess\.env\b"),
)
_UNSAFE_DOM_PATTERNS = (
    re.compile(r"\bdangerouslySetInnerHTML\b"),
    re.compile(r"\.innerHTML\s*="),
    re.compile(r"\bdocument\.write\s*\("),
)
# Static imports and re-exports; whitespace around `from` is optional in JS.
_MODULE_REF_RE = re.compile(
    r"(?:^|[;}])\s*(?:import(?![\w$])|export\s*(?:\*|\{))"
    r"\s*(?:[^;\"'`]*?from\s*)?[\"']([^\"']+)[\"']",
    re.MULTILINE,
)
_LEADING_IMPORT_RE = re.compile(
    r"import(?![\w$])\s*(?:[^;\"'`]*?from\s*)?[\"'][^\"']+[\"'];?"
)


@dataclass(frozen=True)
class ValidationReport:
    valid: bool
    rule: str | None = None
    detail: str | None = None


class ArtifactValidator:
    def __init__(self, max_chars: int, allowed_imports: tuple[str, ...] = ("react",)) -> None:
        self._max_chars = max_chars
        self._allowed_imports = frozenset(allowed_imports)

    def validate(
        self, code: str, name: str, kind: ComponentType | None = None
    ) -> ValidationReport:
        """Check ``code`` against every rule; the first failing rule is reported.

        With ``kind`` given, the default export must also destructure the prop
        that kind of component is rendered with.
        """
        if not code.strip():
            return _reject(RULE_EMPTY, "Generated code is empty")
        if len(code) > self._max_chars:
            return _reject(
                RULE_SIZE,
                f"Generated code is {len(code)} characters, limit is {self._max_chars}",
            )

        body = _skip_imports(code)
        export_re = re.compile(rf"^export\s+default\s+function\s+{re.escape(name)}\s*\(")
        if not export_re.match(body):
            return _reject(
                RULE_EXPORT_SHAPE,
                f"Generated code does not start with 'export default function {name}('",
            )

        for rule, patterns in (
            (RULE_DYNAMIC_EVAL, _DYNAMIC_EVAL_PATTERNS),
            (RULE_FORBIDDEN_API, _FORBIDDEN_API_PATTERNS),
            (RULE_UNSAFE_DOM, _UNSAFE_DOM_PATTERNS),
        ):
            for pattern in patterns:
                match = pattern.search(code)
                if match:
                    return _reject(rule, f"Forbidden construct: {match.group(0).strip()}")

        for module in _MODULE_REF_RE.findall(code):
            root = module.split("/", 1)[0]
            if root not in self._allowed_imports:
                return _reject(RULE_IMPORT_ALLOWLIST, f"Import of '{module}' is not allowed")

        prop = PROP_BY_KIND.get(kind) if kind is not None else None
        if prop and not _takes_prop(body, name, prop):
            return _reject(
                RULE_COMPONENT_PROPS,
                f"{name} must take a destructured '{prop}' prop ({kind.value} component)",
            )

        return ValidationReport(valid=True)


def _reject(rule: str, detail: str) -> ValidationReport:
    return ValidationReport(valid=False, rule=rule, detail=detail)


def _skip_imports(code: str) -> str:
    """The source after any leading static import statements."""
    body = code.lstrip()
    match = _LEADING_IMPORT_RE.match(body)
    while match:
        body = body[match.end():].lstrip()
        match = _LEADING_IMPORT_RE.match(body)
    return body


def _takes_prop(body: str, name: str, prop: str) -> bool:
    """True when the default export destructures ``prop`` from its first parameter."""
    head = re.match(rf"export\s+default\s+function\s+{re.escape(name)}\s*\(\s*\{{", body)
    if not head:
        return False
    depth = 1
    end = head.end()
    while end < len(body) and depth:
        if body[end] in "([{":
            depth += 1
        elif body[end] in ")]}":
            depth -= 1
        end += 1
    pattern = rf"(?:^|[{{,])\s*{re.escape(prop)}(?![\w$])"
    return re.search(pattern, body[head.end() - 1:end]) is not None
