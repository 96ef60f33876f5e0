"""
Framework-specific textual fix-ups for submitted component source.

The Angular rewrites are plain regex substitutions, not a parser. Each one
is a no-op when its pattern is absent; the build inside the sandbox is what
ultimately rejects broken source.
"""
from __future__ import annotations
import base64
import re

ANGULAR_SELECTOR = "app-root"
ANGULAR_CLASS = "AppComponent"
ANGULAR_COMMON_IMPORT = "import { CommonModule } from '@angular/common';\n"

_SELECTOR_RE = re.compile(r"""selector:\s*['"].*?['"]""")
_CLASS_RE = re.compile(r"export class \w+")
_COMPONENT_RE = re.compile(r"@Component\({")
_TEMPLATE_URL_RE = re.compile(r"templateUrl:.*?,")
_STYLE_URLS_RE = re.compile(r"styleUrls:.*?\],")
_STYLE_URL_RE = re.compile(r"styleUrl:.*?,")


def prepare_angular(code: str) -> str:
    if "@angular/common" not in code:
        code = ANGULAR_COMMON_IMPORT + code
    code = _SELECTOR_RE.sub(f"selector: '{ANGULAR_SELECTOR}'", code, count=1)
    code = _CLASS_RE.sub(f"export class {ANGULAR_CLASS}", code, count=1)
    if "standalone:" not in code:
        code = _COMPONENT_RE.sub("@Component({\n  standalone: true,", code, count=1)

    # inline-only: drop external template/style references
    code = _TEMPLATE_URL_RE.sub("", code)
    code = _STYLE_URLS_RE.sub("", code)
    code = _STYLE_URL_RE.sub("", code)
    return code


def normalize(framework: str, code: str) -> str:
    if framework == "angular":
        return prepare_angular(code)
    return code


def encode(code: str) -> str:
    # base64 alphabet has no shell metacharacters, so it is safe inside "..."
    return base64.b64encode(code.encode("utf-8")).decode("ascii")
