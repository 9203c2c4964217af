"""Exception hierarchy for ruletrace.

Only conditions that stop an operation are raised. Parse warnings, duplicate
rules and graph problems are data: they travel inside scan results and the
ValidationReport and never interrupt a build.
"""


class RuletraceError(Exception):
    """Base class for all ruletrace errors."""


class StartupError(RuletraceError):
    """The first snapshot can never be published (e.g. missing project root)."""


class ConfigError(RuletraceError):
    """The project configuration file is malformed or semantically invalid."""


class ConfigReloadError(ConfigError):
    """A configuration change could not be applied; the previous state stays live."""


class UnknownLanguageError(ConfigError):
    """An implementation declares a language with no comment profile."""

    def __init__(self, language: str):
        super().__init__(f"Unknown language '{language}'")
        self.language = language


class WatchError(RuletraceError):
    """Filesystem watch setup or delivery failed."""


class SourceFetchError(RuletraceError):
    """A spec document could not be read or downloaded."""


class SpecSelectionError(RuletraceError):
    """A spec/impl selector does not resolve to exactly one implementation."""


class RuleNotFoundError(RuletraceError):
    """The requested rule id is not defined in any manifest."""

    def __init__(self, rule_id: str, suggestions: list[str] | None = None):
        message = f"Rule '{rule_id}' not found"
        if suggestions:
            message += f". Did you mean: {', '.join(suggestions)}?"
        super().__init__(message)
        self.rule_id = rule_id
        self.suggestions = suggestions or []


class FileNotIndexedError(RuletraceError):
    """The requested file is not part of the implementation's source set."""


class SectionNotFoundError(RuletraceError):
    """The requested outline section does not exist in the spec."""
