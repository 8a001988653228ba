"""Language file diagnostics: loaded files, errors and untranslated strings."""

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

_WHITESPACE = re.compile(r"\s+")
_NON_WORD = re.compile(r"\W")


@dataclass(frozen=True)
class LanguageData:
    """Raw language information gathered during a request.

    Attributes:
        paths: Extension name to {file: loaded} for every language file tried.
        errors: File to parse error message.
        orphans: Untranslated key to its occurrences; each occurrence is a
            mapping with ``string`` and optional ``file`` and ``line``.
    """

    paths: Mapping[str, Mapping[str, bool]] = field(default_factory=dict)
    errors: Mapping[str, str] = field(default_factory=dict)
    orphans: Mapping[str, Sequence[Mapping[str, Any]]] = field(default_factory=dict)


@dataclass(frozen=True)
class LanguageReport:
    loaded: dict[str, bool]
    errors: dict[str, str]
    untranslated: dict[str, list[str]]


def guess_untranslated(
    orphans: Mapping[str, Sequence[Mapping[str, Any]]],
    strip_first: bool = True,
    strip_prefix: str = "",
    strip_suffix: str = "",
) -> dict[str, list[str]]:
    """Suggest ``KEY="Text"`` lines for untranslated strings, grouped by file.

    Strings of the form ``KEY=Text`` are split on the first ``=``. Otherwise
    underscores become spaces, the first word is dropped when ``strip_first``
    is set, and the ``strip_prefix``/``strip_suffix`` patterns are removed
    case-insensitively. Keys are upper-cased with whitespace turned into
    underscores and other non-word characters removed.

    Files are keyed by path; occurrences without a file use "".
    """
    guesses: dict[str, list[str]] = {}
    for key in sorted(orphans):
        occurrences = orphans[key]
        if not occurrences:
            continue
        occurrence = occurrences[0]
        string = str(occurrence.get("string", key))
        file = occurrence.get("file") or ""

        if string.find("=") > 0:
            key, guess = string.split("=", 2)[:2]
        else:
            guess = string.replace("_", " ")
            if strip_first:
                parts = guess.split(" ")
                if len(parts) > 1:
                    guess = " ".join(parts[1:])
            guess = guess.strip()
            if strip_prefix:
                guess = re.sub("^" + strip_prefix, "", guess, flags=re.IGNORECASE).strip()
            if strip_suffix:
                guess = re.sub(strip_suffix + "$", "", guess, flags=re.IGNORECASE).strip()

        key = _NON_WORD.sub("", _WHITESPACE.sub("_", key.strip().upper()))
        guesses.setdefault(file, []).append(f'{key}="{guess}"')
    return guesses


def language_report(
    data: LanguageData,
    strip_first: bool = True,
    strip_prefix: str = "",
    strip_suffix: str = "",
) -> LanguageReport:
    loaded: dict[str, bool] = {}
    for files in data.paths.values():
        for file, status in files.items():
            loaded[file] = bool(status)
    return LanguageReport(
        loaded=loaded,
        errors={file: message.replace(file, "").strip() for file, message in data.errors.items()},
        untranslated=guess_untranslated(data.orphans, strip_first, strip_prefix, strip_suffix),
    )
