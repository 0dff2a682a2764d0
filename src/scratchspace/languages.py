"""Shared language list, colour palette and language -> file extension map."""

from __future__ import annotations

SUPPORTED_LANGUAGES = (
    "plaintext", "javascript", "typescript", "python", "html", "css", "scss", "sass",
    "json", "markdown", "xml", "yaml", "sql", "shell", "powershell", "bat",
    "java", "csharp", "cpp", "c", "php", "ruby", "go", "rust", "swift",
    "kotlin", "dart", "perl", "lua", "r", "matlab", "julia", "scala",
)

COLORS = (
    "#FF6B6B", "#4ECDC4", "#45B7D1", "#96CEB4", "#FFEAA7",
    "#DDA0DD", "#98D8C8", "#F7DC6F", "#BB8FCE", "#85C1E9",
)

_EXTENSIONS = {
    "javascript": "js",
    "typescript": "ts",
    "python": "py",
    "html": "html",
    "css": "css",
    "scss": "scss",
    "sass": "sass",
    "less": "less",
    "json": "json",
    "markdown": "md",
    "sql": "sql",
    "xml": "xml",
    "yaml": "yaml",
    "php": "php",
    "ruby": "rb",
    "go": "go",
    "rust": "rs",
    "java": "java",
    "c": "c",
    "cpp": "cpp",
    "csharp": "cs",
    "shell": "sh",
    "shellscript": "sh",
    "powershell": "ps1",
    "bat": "bat",
    "r": "r",
    "swift": "swift",
    "kotlin": "kt",
    "scala": "scala",
    "dart": "dart",
    "julia": "jl",
    "matlab": "m",
    "lua": "lua",
    "perl": "pl",
    "toml": "toml",
    "ini": "ini",
}


def extension_for(language: str) -> str:
    """Return the file extension used for a language, ``txt`` when unknown."""
    return _EXTENSIONS.get(language, "txt")
