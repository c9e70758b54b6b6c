"""Find and sanity-check file targets for plan steps."""

from __future__ import annotations

import re
from typing import Optional

from teddy.config.defaults import MAX_TARGET_LENGTH

# File extension per fence language, used when a target is inferred from a
# class or interface declaration
LANGUAGE_EXTENSIONS = {
    "typescript": "ts", "ts": "ts", "tsx": "tsx",
    "javascript": "js", "js": "js", "jsx": "jsx",
    "python": "py", "py": "py",
    "java": "java", "kotlin": "kt", "kt": "kt",
    "csharp": "cs", "cs": "cs", "c#": "cs",
    "swift": "swift", "scala": "scala", "dart": "dart",
    "php": "php", "ruby": "rb", "rb": "rb",
    "go": "go", "rust": "rs", "rs": "rs",
    "cpp": "cpp", "c++": "cpp", "c": "c",
}

# `// src/app.ts`, `# File: pkg/mod.py`, `/* styles/main.css */`, `<!-- index.html -->`
_PATH_COMMENT_RE = re.compile(
    r"^\s*(?://|#|/\*|<!--|--|;)\s*(?:(?:file(?:name)?|path)\s*:\s*)?"
    r"`?([\w@~.\-/\\]+\.[A-Za-z][\w]{0,7})`?\s*(?:\*/|-->)?\s*$",
    re.IGNORECASE,
)
_MOD_RE = re.compile(r"^\s*(?:pub(?:\([\w:]+\))?\s+)?mod\s+([a-z_][a-z0-9_]*)\s*[;{]", re.MULTILINE)
_CLASS_RE = re.compile(
    r"^\s*(?:export\s+)?(?:default\s+)?(?:public\s+|abstract\s+|final\s+|sealed\s+|data\s+)*"
    r"(?:class|interface)\s+([A-Z][A-Za-z0-9_]*)",
    re.MULTILINE,
)

_BACKTICK_PATH_RE = re.compile(r"`([\w@~.\-/\\]*[\w-]\.[A-Za-z][\w]{0,7})`")
_BARE_PATH_RE = re.compile(r"(?<![\w/.@-])((?:[\w@~.\-]+/)*[A-Za-z_][\w.-]*\.[A-Za-z][A-Za-z0-9]{0,7})(?![\w/])")

# Tokens shaped like word.ext that are not file names
_NOT_FILES = frozenset({"e.g", "i.e", "etc", "vs"})

FILE_EXTENSIONS = frozenset(LANGUAGE_EXTENSIONS.values()) | frozenset({
    "h", "hpp", "mjs", "cjs", "vue", "svelte", "html", "htm", "css", "scss", "less",
    "json", "yaml", "yml", "toml", "ini", "cfg", "env", "xml", "md", "txt", "sql",
    "sh", "bash", "ps1", "gradle", "lock", "csv", "proto", "graphql",
})


def _looks_like_file(token: str) -> bool:
    if token.lower() in _NOT_FILES:
        return False
    if "/" in token:
        return True
    return token.rsplit(".", 1)[-1].lower() in FILE_EXTENSIONS


def is_malformed_target(target: Optional[str]) -> bool:
    """True when a path looks like description text bled into the target."""
    if not target or not target.strip():
        return True
    return " - " in target or len(target) > MAX_TARGET_LENGTH


def clean_target(raw: str) -> str:
    """Strip markdown decoration from a target value."""
    target = raw.strip().strip("`*\"'").strip()
    # `path` (new file) -> path
    target = re.sub(r"\s+\((?:new|existing|create|modify)[^)]*\)\s*$", "", target, flags=re.IGNORECASE)
    return target.strip("`").strip()


def infer_target_from_code(code: str, lang: str = "") -> Optional[str]:
    """Guess a target path from a code block.

    Tries, in order: a leading file-path comment, a Rust `mod` declaration,
    then a class or interface declaration combined with the fence language.
    """
    for line in code.splitlines()[:3]:
        if not line.strip():
            continue
        m = _PATH_COMMENT_RE.match(line)
        if m:
            return m.group(1).replace("\\", "/")

    m = _MOD_RE.search(code)
    if m:
        return f"src/{m.group(1)}.rs"

    ext = LANGUAGE_EXTENSIONS.get(lang.lower())
    if ext:
        m = _CLASS_RE.search(code)
        if m:
            return f"{m.group(1)}.{ext}"
    return None


def find_inline_target(text: str) -> Optional[str]:
    """First file reference in prose: a backticked path, else a bare `name.ext` token."""
    for m in _BACKTICK_PATH_RE.finditer(text):
        if _looks_like_file(m.group(1)):
            return m.group(1)
    for m in _BARE_PATH_RE.finditer(text):
        token = m.group(1).rstrip(".")
        if _looks_like_file(token):
            return token
    return None
