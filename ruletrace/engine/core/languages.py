"""Comment syntax profiles per language.

Each language is a row of data: line-comment prefixes, block-comment
delimiter pairs and doc-comment markers. The scanner never branches on the
language name, so adding a language means adding a row here.
"""

from dataclasses import dataclass

from ...exceptions import UnknownLanguageError


@dataclass(frozen=True)
class CommentProfile:
    """Comment syntax for one language.

    Attributes:
        name: Canonical language name
        extensions: File extensions (with dot) that belong to the language
        line_prefixes: Prefixes that start a comment running to end of line
        block_delimiters: (open, close) pairs for block comments
        doc_markers: Doc-comment openers; they are ordinary comment openers
            for scanning purposes and are listed for consumers that label them
        default_include: Glob patterns used when an impl declares none
        aliases: Other names accepted in configuration
    """

    name: str
    extensions: tuple[str, ...]
    line_prefixes: tuple[str, ...] = ()
    block_delimiters: tuple[tuple[str, str], ...] = ()
    doc_markers: tuple[str, ...] = ()
    default_include: tuple[str, ...] = ()
    aliases: tuple[str, ...] = ()


_C_BLOCK = (("/*", "*/"),)
_C_DOCS = ("///", "//!", "/**", "/*!")


def _profile(name: str, exts: tuple[str, ...], **kwargs) -> CommentProfile:
    default_include = kwargs.pop(
        "default_include", tuple(f"**/*{ext}" for ext in exts)
    )
    return CommentProfile(name=name, extensions=exts, default_include=default_include, **kwargs)


PROFILES: tuple[CommentProfile, ...] = (
    _profile("rust", (".rs",), line_prefixes=("//",), block_delimiters=_C_BLOCK,
             doc_markers=_C_DOCS, aliases=("rs",)),
    _profile("c", (".c", ".h"), line_prefixes=("//",), block_delimiters=_C_BLOCK,
             doc_markers=("/**",)),
    _profile("cpp", (".cpp", ".cc", ".cxx", ".hpp", ".hh", ".hxx"), line_prefixes=("//",),
             block_delimiters=_C_BLOCK, doc_markers=_C_DOCS, aliases=("c++", "cxx")),
    _profile("csharp", (".cs",), line_prefixes=("//",), block_delimiters=_C_BLOCK,
             doc_markers=("///", "/**"), aliases=("c#", "cs")),
    _profile("go", (".go",), line_prefixes=("//",), block_delimiters=_C_BLOCK,
             aliases=("golang",)),
    _profile("java", (".java",), line_prefixes=("//",), block_delimiters=_C_BLOCK,
             doc_markers=("/**",)),
    _profile("kotlin", (".kt", ".kts"), line_prefixes=("//",), block_delimiters=_C_BLOCK,
             doc_markers=("/**",)),
    _profile("swift", (".swift",), line_prefixes=("//",), block_delimiters=_C_BLOCK,
             doc_markers=("///", "/**")),
    _profile("scala", (".scala", ".sc"), line_prefixes=("//",), block_delimiters=_C_BLOCK,
             doc_markers=("/**",)),
    _profile("javascript", (".js", ".mjs", ".cjs", ".jsx"), line_prefixes=("//",),
             block_delimiters=_C_BLOCK, doc_markers=("/**",), aliases=("js",)),
    _profile("typescript", (".ts", ".mts", ".cts", ".tsx"), line_prefixes=("//",),
             block_delimiters=_C_BLOCK, doc_markers=("/**",), aliases=("ts",)),
    _profile("zig", (".zig",), line_prefixes=("//",), doc_markers=("///", "//!")),
    _profile("dart", (".dart",), line_prefixes=("//",), block_delimiters=_C_BLOCK,
             doc_markers=("///", "/**")),
    _profile("php", (".php",), line_prefixes=("//", "#"), block_delimiters=_C_BLOCK,
             doc_markers=("/**",)),
    # Docstrings count as comments; ordinary string literals are not tracked.
    _profile("python", (".py", ".pyi"), line_prefixes=("#",),
             block_delimiters=(('"""', '"""'), ("'''", "'''")), aliases=("py",)),
    _profile("ruby", (".rb",), line_prefixes=("#",), block_delimiters=(("=begin", "=end"),),
             aliases=("rb",)),
    _profile("shell", (".sh", ".bash", ".zsh"), line_prefixes=("#",), aliases=("bash", "sh")),
    _profile("toml", (".toml",), line_prefixes=("#",)),
    _profile("yaml", (".yaml", ".yml"), line_prefixes=("#",), aliases=("yml",)),
    _profile("lua", (".lua",), line_prefixes=("--",), block_delimiters=(("--[[", "]]"),)),
    _profile("sql", (".sql",), line_prefixes=("--",), block_delimiters=_C_BLOCK),
    _profile("haskell", (".hs", ".lhs"), line_prefixes=("--",),
             block_delimiters=(("{-", "-}"),), doc_markers=("-- |", "{-|"), aliases=("hs",)),
    _profile("html", (".html", ".htm", ".xml", ".svg"), block_delimiters=(("<!--", "-->"),),
             aliases=("xml",)),
    _profile("css", (".css", ".scss", ".less"), block_delimiters=_C_BLOCK),
)

_BY_NAME: dict[str, CommentProfile] = {}
for _p in PROFILES:
    _BY_NAME[_p.name] = _p
    for _alias in _p.aliases:
        _BY_NAME[_alias] = _p

_BY_EXTENSION: dict[str, CommentProfile] = {
    ext: profile for profile in PROFILES for ext in profile.extensions
}


def get_profile(language: str) -> CommentProfile:
    """Look up a profile by language name or alias (case-insensitive).

    Raises:
        UnknownLanguageError: if the language has no profile.
    """
    profile = _BY_NAME.get(language.strip().lower())
    if profile is None:
        raise UnknownLanguageError(language)
    return profile


def profile_for_path(path: str) -> CommentProfile | None:
    """Guess a profile from a file extension."""
    dot = path.rfind(".")
    if dot == -1:
        return None
    return _BY_EXTENSION.get(path[dot:].lower())


def known_languages() -> list[str]:
    return sorted(profile.name for profile in PROFILES)
